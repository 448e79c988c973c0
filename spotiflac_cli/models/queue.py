"""
Dataclasses describing queued tracks, their lifecycle state, and the
transient values produced while resolving them against services.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class ItemState(Enum):
    """Lifecycle states of a queue item."""

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {ItemState.COMPLETED, ItemState.SKIPPED, ItemState.FAILED}
)


def normalize_isrc(isrc: Optional[str]) -> str:
    """Uppercases an ISRC and strips separators so 'us-abc-12-34567' == 'USABC1234567'."""
    if not isrc:
        return ""
    return "".join(ch for ch in isrc if ch.isalnum()).upper()


@dataclass(frozen=True)
class TrackIdentity:
    """
    The content fingerprint (ISRC) of a requested track plus the display
    and hint fields used for path building and fallback matching.
    """

    isrc: str
    title: str = ""
    artist: str = ""
    album: str = ""
    album_artist: str = ""
    duration: Optional[int] = None  # seconds
    track_number: int = 0
    disc_number: int = 1
    release_date: str = ""
    spotify_id: str = ""
    service_url: str = ""
    cover_url: str = ""

    @property
    def normalized_isrc(self) -> str:
        return normalize_isrc(self.isrc)

    @property
    def display_name(self) -> str:
        if self.artist and self.title:
            return f"{self.artist} - {self.title}"
        return self.title or self.isrc

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackIdentity":
        """Builds an identity from a loosely-keyed track dictionary (e.g. a JSON export)."""
        duration = data.get("duration")
        if duration is None and data.get("duration_ms"):
            duration = int(data["duration_ms"]) // 1000
        return cls(
            isrc=str(data.get("isrc") or ""),
            title=str(data.get("title") or data.get("track_name") or ""),
            artist=str(data.get("artist") or data.get("artist_name") or ""),
            album=str(data.get("album") or data.get("album_name") or ""),
            album_artist=str(data.get("album_artist") or ""),
            duration=int(duration) if duration else None,
            track_number=int(data.get("track_number") or 0),
            disc_number=int(data.get("disc_number") or 1),
            release_date=str(data.get("release_date") or ""),
            spotify_id=str(data.get("spotify_id") or ""),
            service_url=str(data.get("service_url") or ""),
            cover_url=str(data.get("cover_url") or ""),
        )


@dataclass
class QueueItem:
    """One requested logical track and its position in the download lifecycle."""

    id: str
    identity: TrackIdentity
    state: ItemState = ItemState.QUEUED
    result_path: Optional[str] = None
    error: Optional[str] = None
    size_bytes: int = 0
    queued_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def copy(self) -> "QueueItem":
        return replace(self)


@dataclass(frozen=True)
class QueueSnapshot:
    """A point-in-time, read-only view of the queue, derived from its items."""

    items: Tuple[QueueItem, ...]
    counts: Dict[ItemState, int]
    total_size_bytes: int = 0
    session_started_at: Optional[float] = None

    @classmethod
    def from_items(
        cls, items: List[QueueItem], session_started_at: Optional[float] = None
    ) -> "QueueSnapshot":
        counts = {state: 0 for state in ItemState}
        total_size = 0
        for item in items:
            counts[item.state] += 1
            if item.state is ItemState.COMPLETED:
                total_size += item.size_bytes
        return cls(
            items=tuple(items),
            counts=counts,
            total_size_bytes=total_size,
            session_started_at=session_started_at,
        )

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def queued(self) -> int:
        return self.counts[ItemState.QUEUED]

    @property
    def downloading(self) -> int:
        return self.counts[ItemState.DOWNLOADING]

    @property
    def completed(self) -> int:
        return self.counts[ItemState.COMPLETED]

    @property
    def skipped(self) -> int:
        return self.counts[ItemState.SKIPPED]

    @property
    def failed(self) -> int:
        return self.counts[ItemState.FAILED]

    @property
    def is_downloading(self) -> bool:
        return self.downloading > 0

    @property
    def finished(self) -> int:
        return self.completed + self.skipped + self.failed

    def get(self, item_id: str) -> Optional[QueueItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


class Verification(Enum):
    """Outcome of checking a candidate against the requested identity."""

    MATCHED = "matched"
    UNMATCHED = "unmatched"
    UNKNOWN = "unknown"


@dataclass
class Candidate:
    """A single search result returned by a service backend."""

    service: str
    url: str
    title: str = ""
    artist: str = ""
    isrc: Optional[str] = None
    duration: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ServiceAttempt:
    """Describes one fallback try; kept only until the queue item settles."""

    service: str
    url: Optional[str] = None
    verification: Verification = Verification.UNKNOWN
    error: Optional[str] = None

    def describe(self) -> str:
        detail = self.error or self.verification.value
        return f"{self.service}: {detail}"


@dataclass
class ResolutionResult:
    """A verified, downloaded file and the attempt that produced it."""

    path: Path
    service: str
    attempts: List[ServiceAttempt] = field(default_factory=list)

    @property
    def size_bytes(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError:
            return 0


@dataclass
class DownloadOutcome:
    """What happened to a queue item after it was processed."""

    item_id: str
    state: ItemState
    path: Optional[str] = None
    message: str = ""
    service: Optional[str] = None
