"""
Reads identity tags (ISRC, title, artist, album) from FLAC, MP3 and M4A files
and embeds lyrics into downloaded files.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import mutagen.id3 as id3
from mutagen import MutagenError
from mutagen.flac import FLAC
from mutagen.id3 import ID3NoHeaderError
from mutagen.mp4 import MP4, MP4FreeForm

from spotiflac_cli.models.queue import normalize_isrc

log = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".flac", ".mp3", ".m4a")
MP4_ISRC_KEY = "----:com.apple.iTunes:ISRC"


@dataclass
class TrackTags:
    """The subset of embedded tags used for deduplication and library repair."""

    title: str = ""
    artist: str = ""
    album: str = ""
    album_artist: str = ""
    isrc: str = ""


def _first(values) -> str:
    if not values:
        return ""
    if isinstance(values, (list, tuple)):
        values = values[0] if values else ""
    if isinstance(values, bytes):
        return values.decode("utf-8", errors="replace").strip()
    return str(values).strip()


def _join(values) -> str:
    if not values:
        return ""
    if isinstance(values, (list, tuple)):
        return ", ".join(str(v).strip() for v in values if str(v).strip())
    return str(values).strip()


def _read_flac(path: str) -> TrackTags:
    audio = FLAC(path)
    tags = audio.tags or {}
    return TrackTags(
        title=_first(tags.get("TITLE")),
        artist=_join(tags.get("ARTIST")),
        album=_first(tags.get("ALBUM")),
        album_artist=_first(tags.get("ALBUMARTIST")),
        isrc=_first(tags.get("ISRC")),
    )


def _read_mp3(path: str) -> TrackTags:
    try:
        audio = id3.ID3(path)
    except ID3NoHeaderError:
        return TrackTags()

    def frame(key: str) -> List[str]:
        found = audio.get(key)
        return list(found.text) if found is not None else []

    return TrackTags(
        title=_first(frame("TIT2")),
        artist=_join(frame("TPE1")),
        album=_first(frame("TALB")),
        album_artist=_first(frame("TPE2")),
        isrc=_first(frame("TSRC")),
    )


def _read_m4a(path: str) -> TrackTags:
    audio = MP4(path)
    tags = audio.tags or {}
    return TrackTags(
        title=_first(tags.get("\xa9nam")),
        artist=_join(tags.get("\xa9ART")),
        album=_first(tags.get("\xa9alb")),
        album_artist=_first(tags.get("aART")),
        isrc=_first(tags.get(MP4_ISRC_KEY)),
    )


_READERS = {".flac": _read_flac, ".mp3": _read_mp3, ".m4a": _read_m4a}


def extract_tags(path: str) -> TrackTags:
    """
    Reads title, artist, album, album artist and ISRC from an audio file.

    Raises:
        ValueError: If the file extension is not a supported audio format.
        MutagenError: If the file cannot be parsed.
    """
    ext = os.path.splitext(path)[1].lower()
    reader = _READERS.get(ext)
    if reader is None:
        raise ValueError(f"Unsupported audio format: '{ext or path}'")
    return reader(path)


def read_embedded_isrc(path: str) -> str:
    """
    Returns the normalised ISRC embedded in a file, or an empty string when
    the file has none or cannot be read.
    """
    try:
        return normalize_isrc(extract_tags(path).isrc)
    except (MutagenError, ValueError, OSError) as e:
        log.debug(f"Could not read ISRC from '{os.path.basename(path)}': {e}")
        return ""


def embed_lyrics(path: str, lyrics: str) -> None:
    """Writes lyrics text into the file's native lyrics tag."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".flac":
        audio = FLAC(path)
        audio["LYRICS"] = [lyrics]
        audio.save()
    elif ext == ".mp3":
        try:
            audio = id3.ID3(path)
        except ID3NoHeaderError:
            audio = id3.ID3()
        audio.delall("USLT")
        audio.add(id3.USLT(encoding=3, lang="eng", desc="", text=lyrics))
        audio.save(filename=path, v2_version=3)
    elif ext == ".m4a":
        audio = MP4(path)
        audio["\xa9lyr"] = [lyrics]
        audio.save()
    else:
        raise ValueError(f"Cannot embed lyrics into '{ext or path}'")
    log.debug(f"Embedded lyrics into '{os.path.basename(path)}'")


def write_isrc(path: str, isrc: str) -> None:
    """Stores an ISRC in a file's tags, creating the tag block if needed."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".flac":
        audio = FLAC(path)
        audio["ISRC"] = [isrc]
        audio.save()
    elif ext == ".mp3":
        try:
            audio = id3.ID3(path)
        except ID3NoHeaderError:
            audio = id3.ID3()
        audio.add(id3.TSRC(encoding=3, text=isrc))
        audio.save(filename=path, v2_version=3)
    elif ext == ".m4a":
        audio = MP4(path)
        audio[MP4_ISRC_KEY] = [MP4FreeForm(isrc.encode("utf-8"))]
        audio.save()
    else:
        raise ValueError(f"Cannot tag '{ext or path}'")


def find_audio_files(root: str, extensions: Optional[tuple] = None) -> List[str]:
    """Recursively lists audio files below ``root`` in a stable, sorted order."""
    extensions = extensions or AUDIO_EXTENSIONS
    found = []
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            if name.lower().endswith(extensions):
                found.append(os.path.join(dirpath, name))
    return sorted(found)


def ensure_isrc_tag(path: str, isrc: str) -> bool:
    """
    Makes sure a downloaded file carries its ISRC so later runs recognise it.
    Returns True if the file has the tag afterwards.
    """
    if not isrc:
        return False
    if read_embedded_isrc(path):
        return True
    try:
        write_isrc(path, isrc)
        return True
    except (MutagenError, ValueError, OSError) as e:
        log.debug(f"Could not write ISRC to '{os.path.basename(path)}': {e}")
        return False
