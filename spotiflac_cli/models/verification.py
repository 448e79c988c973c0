"""
Request and report models for auditing a music library for missing covers and lyrics.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class VerificationRequest:
    scan_path: str
    check_covers: bool = True
    check_lyrics: bool = True
    download_missing: bool = False
    database_path: Optional[str] = None
    max_workers: int = 10


@dataclass
class TrackVerificationResult:
    """Verification state of a single audio file."""

    file_path: str
    track_name: str
    has_cover: bool = False
    has_lyrics: bool = False
    cover_path: Optional[str] = None
    lyrics_path: Optional[str] = None
    missing_cover: bool = False
    missing_lyrics: bool = False
    cover_downloaded: bool = False
    lyrics_downloaded: bool = False
    error: Optional[str] = None


@dataclass
class LibraryVerificationReport:
    """Aggregated counters plus per-track detail for a verification run."""

    scan_path: str
    total_tracks: int = 0
    tracks_with_cover: int = 0
    tracks_with_lyrics: int = 0
    missing_covers: int = 0
    missing_lyrics: int = 0
    covers_downloaded: int = 0
    lyrics_downloaded: int = 0
    tracks: List[TrackVerificationResult] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return (
            self.missing_covers - self.covers_downloaded <= 0
            and self.missing_lyrics - self.lyrics_downloaded <= 0
        )
