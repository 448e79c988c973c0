"""
Provides methods for checking the integrity of downloaded media files.
"""

import logging
import os

from mutagen.flac import FLAC, FLACNoHeaderError
from mutagen.mp3 import MP3, HeaderNotFoundError
from mutagen.mp4 import MP4, MP4StreamInfoError

log = logging.getLogger(__name__)


def sniff_format(filepath: str) -> str:
    """Guesses the container from the first bytes: 'flac', 'mp3', 'm4a' or ''."""
    try:
        with open(filepath, "rb") as f:
            head = f.read(12)
    except OSError:
        return ""
    if head.startswith(b"fLaC"):
        return "flac"
    if head.startswith(b"ID3") or (len(head) > 1 and head[0] == 0xFF and head[1] & 0xE0 == 0xE0):
        return "mp3"
    if head[4:8] == b"ftyp":
        return "m4a"
    return ""


class FileIntegrityChecker:
    """A collection of static methods for validating media file integrity."""

    @staticmethod
    def check_flac(filepath: str) -> bool:
        """
        Performs a basic integrity check on a FLAC file.

        Checks if the file can be opened by mutagen and has valid stream info.
        """
        try:
            audio = FLAC(filepath)
            if audio.info and audio.info.length > 0:
                return True
            log.warning(
                f"FLAC integrity check failed for '{filepath}': No valid stream info."
            )
            return False
        except FLACNoHeaderError:
            log.warning(
                f"FLAC integrity check failed for '{filepath}': Missing FLAC header."
            )
            return False
        except Exception as e:
            log.debug(f"FLAC check failed for '{filepath}' with unexpected error: {e}")
            return False

    @staticmethod
    def check_mp3(filepath: str) -> bool:
        try:
            audio = MP3(filepath)
            if audio.info and audio.info.length > 0:
                return True
            log.warning(
                f"MP3 integrity check failed for '{filepath}': No valid stream info."
            )
            return False
        except HeaderNotFoundError:
            log.warning(
                f"MP3 integrity check failed for '{filepath}': Missing MP3 header."
            )
            return False
        except Exception as e:
            log.debug(f"MP3 check failed for '{filepath}' with unexpected error: {e}")
            return False

    @staticmethod
    def check_m4a(filepath: str) -> bool:
        try:
            audio = MP4(filepath)
            if audio.info and audio.info.length > 0:
                return True
            log.warning(
                f"M4A integrity check failed for '{filepath}': No valid stream info."
            )
            return False
        except MP4StreamInfoError:
            log.warning(f"M4A integrity check failed for '{filepath}': No audio track.")
            return False
        except Exception as e:
            log.debug(f"M4A check failed for '{filepath}' with unexpected error: {e}")
            return False

    @classmethod
    def check(cls, filepath: str, expected_format: str = "") -> bool:
        """
        Validates a file by its expected format, or by sniffing its header when
        the name carries no usable extension (e.g. temporary '.part-*' files).
        """
        fmt = expected_format.lower().lstrip(".")
        if not fmt:
            fmt = os.path.splitext(filepath)[1].lower().lstrip(".")
        if fmt not in ("flac", "mp3", "m4a"):
            fmt = sniff_format(filepath)
        checker = {
            "flac": cls.check_flac,
            "mp3": cls.check_mp3,
            "m4a": cls.check_m4a,
        }.get(fmt)
        if checker is None:
            log.warning(f"Integrity check failed for '{filepath}': unrecognised format.")
            return False
        return checker(filepath)
