"""
Helper functions for formatting data into human-readable strings and for
normalising text before fuzzy comparison.
"""

import re
import unicodedata
from typing import Tuple


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def parse_filename_fallback(stem: str) -> Tuple[str, str]:
    """
    Splits a filename stem of the form 'Title - Artist' into (title, artist),
    the order the default 'title-artist' filename format writes.

    Only the first ' - ' separates the two; a stem without one is returned as
    the title with an empty artist.
    """
    stem = stem.strip()
    if " - " in stem:
        title, artist = stem.split(" - ", 1)
        return title.strip(), artist.strip()
    return stem, ""


_BRACKETED = re.compile(r"[\(\[].*?[\)\]]")
_NON_WORD = re.compile(r"[^\w\s]")


def normalize_text(value: str) -> str:
    """
    Lowercases, strips accents, bracketed suffixes like '(Remastered 2011)'
    and punctuation, and collapses whitespace.
    """
    if not value:
        return ""
    value = unicodedata.normalize("NFKD", value)
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = _BRACKETED.sub(" ", value.lower())
    value = _NON_WORD.sub(" ", value)
    return " ".join(value.split())
