"""
Cover-art lookups against free public services, tried in a fixed order until
one of them yields an image URL.
"""

import asyncio
import logging
from typing import List, Optional, Protocol

import aiohttp

from spotiflac_cli.exceptions import NotFoundError

from .client import MetadataClient
from .rate_limiter import FixedDelayLimiter

log = logging.getLogger(__name__)


class CoverSource(Protocol):
    name: str

    async def find_cover(self, title: str, artist: str) -> Optional[str]: ...


class ITunesCoverSource:
    """iTunes Search API; upgrades the 100px artwork URL to 3000px."""

    name = "iTunes"
    SEARCH_URL = "https://itunes.apple.com/search"

    def __init__(self, client: Optional[MetadataClient] = None):
        self._client = client or MetadataClient(self.name)

    async def find_cover(self, title: str, artist: str) -> Optional[str]:
        data = await self._client.get_json(
            self.SEARCH_URL,
            params={
                "term": f"{title} {artist}",
                "media": "music",
                "entity": "song",
                "limit": 5,
            },
        )
        results = data.get("results") or []
        if not results:
            return None
        artwork = results[0].get("artworkUrl100") or ""
        if not artwork:
            return None
        return artwork.replace("100x100bb", "3000x3000bb", 1)


class DeezerCoverSource:
    """Deezer search API; returns the 1000px album cover."""

    name = "Deezer"
    SEARCH_URL = "https://api.deezer.com/search"

    def __init__(self, client: Optional[MetadataClient] = None):
        self._client = client or MetadataClient(self.name)

    async def find_cover(self, title: str, artist: str) -> Optional[str]:
        data = await self._client.get_json(
            self.SEARCH_URL, params={"q": f"{title} {artist}", "limit": 1}
        )
        results = data.get("data") or []
        if not results:
            return None
        return (results[0].get("album") or {}).get("cover_xl") or None


class MusicBrainzCoverSource:
    """
    MusicBrainz recording search followed by a Cover Art Archive lookup.
    Every MusicBrainz request waits on a fixed-delay limiter first.
    """

    name = "MusicBrainz"
    SEARCH_URL = "https://musicbrainz.org/ws/2/recording/"
    COVER_URL = "https://coverartarchive.org/release/{release_id}/front"

    def __init__(
        self,
        client: Optional[MetadataClient] = None,
        limiter: Optional[FixedDelayLimiter] = None,
    ):
        self._client = client or MetadataClient(self.name)
        self._limiter = limiter or FixedDelayLimiter(1.1)

    async def find_cover(self, title: str, artist: str) -> Optional[str]:
        async with self._limiter:
            data = await self._client.get_json(
                self.SEARCH_URL,
                params={
                    "query": f'recording:"{title}" AND artist:"{artist}"',
                    "fmt": "json",
                    "limit": 1,
                },
            )
        recordings = data.get("recordings") or []
        if not recordings:
            return None
        releases = recordings[0].get("releases") or []
        release_id = releases[0].get("id") if releases else None
        if not release_id:
            return None
        cover_url = self.COVER_URL.format(release_id=release_id)
        if not await self._client.head_ok(cover_url):
            log.debug(f"Cover Art Archive has no front cover for {release_id}")
            return None
        return cover_url


class CoverArtProvider:
    """Tries each cover source in order and returns the first URL found."""

    def __init__(self, sources: Optional[List[CoverSource]] = None):
        self.sources = (
            sources
            if sources is not None
            else [ITunesCoverSource(), DeezerCoverSource(), MusicBrainzCoverSource()]
        )

    async def find_cover(self, title: str, artist: str) -> Optional[str]:
        if not title or not artist:
            return None
        for source in self.sources:
            try:
                url = await source.find_cover(title, artist)
            except (
                NotFoundError,
                aiohttp.ClientError,
                asyncio.TimeoutError,
                ValueError,
            ) as e:
                log.debug(f"{source.name} cover lookup failed for '{title}': {e}")
                continue
            if url:
                log.debug(f"[green]✓ Found cover via {source.name}[/green]")
                return url
        return None
