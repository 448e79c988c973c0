"""
Lyrics lookup against LRCLIB and conversion to the LRC text format.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from spotiflac_cli.exceptions import NotFoundError

from .client import MetadataClient

log = logging.getLogger(__name__)

_LRC_LINE = re.compile(r"^\[(\d+):(\d+(?:\.\d+)?)\](.*)$")


@dataclass
class LyricLine:
    start_ms: Optional[int]
    words: str


@dataclass
class Lyrics:
    """Lyrics for one track; ``synced`` when every line carries a timestamp."""

    lines: List[LyricLine] = field(default_factory=list)
    synced: bool = False
    source: str = "LRCLIB"

    @classmethod
    def from_synced_text(cls, text: str) -> "Lyrics":
        lines = []
        for raw in text.splitlines():
            match = _LRC_LINE.match(raw.strip())
            if not match:
                continue
            minutes, seconds, words = match.groups()
            start_ms = int(round((int(minutes) * 60 + float(seconds)) * 1000))
            lines.append(LyricLine(start_ms, words.strip()))
        return cls(lines=lines, synced=bool(lines))

    @classmethod
    def from_plain_text(cls, text: str) -> "Lyrics":
        return cls(lines=[LyricLine(None, line.rstrip()) for line in text.splitlines()])


def _timestamp(ms: int) -> str:
    minutes, rem = divmod(max(ms, 0), 60_000)
    return f"[{minutes:02d}:{rem / 1000:05.2f}]"


def to_lrc(lyrics: Lyrics, title: str = "", artist: str = "") -> str:
    """Renders lyrics as LRC text with title/artist header tags."""
    if not lyrics.lines:
        return ""
    out = []
    if title:
        out.append(f"[ti:{title}]")
    if artist:
        out.append(f"[ar:{artist}]")
    out.append("[by:spotiflac-cli]")
    out.append("")
    for line in lyrics.lines:
        if lyrics.synced and line.start_ms is not None:
            out.append(f"{_timestamp(line.start_ms)}{line.words}")
        else:
            out.append(line.words)
    return "\n".join(out) + "\n"


class LyricsClient:
    """Looks up lyrics by title and artist on LRCLIB (no authentication needed)."""

    GET_URL = "https://lrclib.net/api/get"
    SEARCH_URL = "https://lrclib.net/api/search"

    def __init__(self, client: Optional[MetadataClient] = None):
        self._client = client or MetadataClient("LRCLIB")

    async def fetch(
        self, title: str, artist: str = "", duration: Optional[int] = None
    ) -> Lyrics:
        """
        Returns lyrics for a track, preferring time-synced lyrics.

        Raises:
            NotFoundError: If LRCLIB has no lyrics for the track.
        """
        if not title:
            raise NotFoundError("A track title is required to look up lyrics.")

        params = {"track_name": title}
        if artist:
            params["artist_name"] = artist
        if duration:
            params["duration"] = str(duration)

        try:
            record = await self._client.get_json(self.GET_URL, params=params)
        except NotFoundError:
            results = await self._client.get_json(
                self.SEARCH_URL, params={k: v for k, v in params.items() if k != "duration"}
            )
            if not results:
                raise NotFoundError(f"No lyrics found for '{title}'")
            record = results[0]

        return self._parse_record(record, title)

    @staticmethod
    def _parse_record(record: dict, title: str) -> Lyrics:
        if synced := record.get("syncedLyrics"):
            lyrics = Lyrics.from_synced_text(synced)
            if lyrics.lines:
                return lyrics
        if plain := record.get("plainLyrics"):
            return Lyrics.from_plain_text(plain)
        if record.get("instrumental"):
            raise NotFoundError(f"'{title}' is instrumental")
        raise NotFoundError(f"No lyrics found for '{title}'")
