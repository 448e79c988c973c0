"""
Service API Layer.

This package holds the streaming-service backends the resolver falls back
across, and the clients for the public cover-art and lyrics services.
"""

from .backends import BackendRegistry, HttpServiceBackend, ServiceBackend
from .cover_sources import CoverArtProvider
from .lyrics import LyricsClient
from .rate_limiter import AdaptiveRateLimiter, FixedDelayLimiter

__all__ = [
    "AdaptiveRateLimiter",
    "BackendRegistry",
    "CoverArtProvider",
    "FixedDelayLimiter",
    "HttpServiceBackend",
    "LyricsClient",
    "ServiceBackend",
]
