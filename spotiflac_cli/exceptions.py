"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from spotiflac_cli.models.queue import ServiceAttempt


class SpotiflacError(Exception):
    """Base exception for all application-specific errors."""


class QueueError(SpotiflacError):
    """Base class for misuse of the download queue."""


class DuplicateIDError(QueueError):
    """Raised when an item is enqueued with an ID that is already present."""


class InvalidTransitionError(QueueError):
    """Raised when a state transition is not allowed from the item's current state."""


class ItemNotFoundError(QueueError):
    """Raised when looking up a queue item that does not exist."""


class ResolutionError(SpotiflacError):
    """Base class for failures while resolving a track against a service."""


class NotFoundError(ResolutionError):
    """Raised when a service search or lookup yields nothing usable."""


class VerificationMismatchError(ResolutionError):
    """Raised when a candidate was found but its identity does not match."""


class TransferFailedError(ResolutionError):
    """Raised when a download fails mid-transfer due to a network or disk error."""


class AggregateFailureError(ResolutionError):
    """
    Raised when every configured service was tried without a verified success.
    Carries the individual attempts for logging; its message is the only
    thing surfaced to the user.
    """

    def __init__(
        self, message: str, attempts: Optional[List["ServiceAttempt"]] = None
    ):
        super().__init__(message)
        self.attempts = list(attempts or [])


class ServiceUnavailableError(SpotiflacError):
    """Raised when a service's circuit breaker is open."""


class ScanPathError(SpotiflacError):
    """Raised when a library scan is requested for a path that does not exist."""


class ConfigurationError(SpotiflacError):
    """Raised for issues related to configuration loading or validation."""
