"""
Data Models Layer.

This package contains the dataclasses and Pydantic models that define the core
data structures used throughout the application, such as queue items,
configuration, and library verification reports.
"""

from .config import DownloadConfig
from .queue import (
    Candidate,
    DownloadOutcome,
    ItemState,
    QueueItem,
    QueueSnapshot,
    ResolutionResult,
    ServiceAttempt,
    TrackIdentity,
    Verification,
)
from .verification import (
    LibraryVerificationReport,
    TrackVerificationResult,
    VerificationRequest,
)

__all__ = [
    "Candidate",
    "DownloadConfig",
    "DownloadOutcome",
    "ItemState",
    "LibraryVerificationReport",
    "QueueItem",
    "QueueSnapshot",
    "ResolutionResult",
    "ServiceAttempt",
    "TrackIdentity",
    "TrackVerificationResult",
    "Verification",
    "VerificationRequest",
]
