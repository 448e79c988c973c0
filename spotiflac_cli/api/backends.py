"""
Streaming-service backends that the resolver tries in priority order.

A backend knows how to search for a track and how to fetch a file from one of
its own URLs. The service-specific wire protocols live outside this package;
``HttpServiceBackend`` takes an async search function and fetches direct URLs
with the shared downloader.
"""

import logging
import re
from typing import (
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from spotiflac_cli.exceptions import NotFoundError
from spotiflac_cli.media.downloader import Downloader
from spotiflac_cli.models.config import DEFAULT_SERVICE_ORDER
from spotiflac_cli.models.queue import Candidate, TrackIdentity

log = logging.getLogger(__name__)

SearchFunc = Callable[[TrackIdentity], Awaitable[List[Candidate]]]

# Hosts used to tell which service a direct URL belongs to
SERVICE_URL_PATTERNS: Dict[str, str] = {
    "tidal": r"tidal\.com/",
    "qobuz": r"qobuz\.com/",
    "amazon": r"music\.amazon\.|amazon\.[a-z.]+/music",
}


@runtime_checkable
class ServiceBackend(Protocol):
    name: str

    def owns_url(self, url: str) -> bool: ...

    async def search(self, identity: TrackIdentity) -> List[Candidate]: ...

    async def fetch(self, url: str, dest_path: str) -> None: ...


class HttpServiceBackend:
    """
    A backend whose audio is reachable by plain HTTP GET.

    Args:
        name: Service name as used in the priority list.
        search_func: Async callable returning candidates for an identity. Without
            one, only direct service URLs can be downloaded.
        downloader: Downloader used to stream files to disk.
        url_pattern: Regex deciding whether a direct URL belongs to this service.
    """

    def __init__(
        self,
        name: str,
        search_func: Optional[SearchFunc] = None,
        downloader: Optional[Downloader] = None,
        url_pattern: Optional[str] = None,
    ):
        self.name = name
        self._search_func = search_func
        self._downloader = downloader or Downloader()
        pattern = url_pattern or SERVICE_URL_PATTERNS.get(name)
        self._url_re = re.compile(pattern, re.IGNORECASE) if pattern else None

    def owns_url(self, url: str) -> bool:
        if not url:
            return False
        if self._url_re is None:
            return True
        return bool(self._url_re.search(url))

    async def search(self, identity: TrackIdentity) -> List[Candidate]:
        if self._search_func is None:
            raise NotFoundError(f"{self.name} has no search configured")
        candidates = await self._search_func(identity)
        if not candidates:
            raise NotFoundError(f"{self.name}: no results for {identity.display_name}")
        return candidates

    async def fetch(self, url: str, dest_path: str) -> None:
        await self._downloader.download_file(url, dest_path)

    def __repr__(self) -> str:
        return f"HttpServiceBackend({self.name!r})"


class BackendRegistry:
    """Maps service names to backends and yields them in priority order."""

    def __init__(
        self,
        backends: Iterable[ServiceBackend] = (),
        default_order: Sequence[str] = DEFAULT_SERVICE_ORDER,
    ):
        self._backends: Dict[str, ServiceBackend] = {}
        self.default_order = list(default_order)
        for backend in backends:
            self.register(backend)

    def register(self, backend: ServiceBackend) -> None:
        if backend.name in self._backends:
            log.debug(f"Replacing backend for '{backend.name}'")
        self._backends[backend.name] = backend

    def get(self, name: str) -> Optional[ServiceBackend]:
        return self._backends.get(name)

    def names(self) -> List[str]:
        return list(self._backends)

    def ordered(self, services: Optional[Sequence[str]] = None) -> List[ServiceBackend]:
        """Returns the registered backends for ``services`` (or the default order)."""
        order = list(services) if services else self.default_order
        ordered = []
        for name in order:
            backend = self._backends.get(name)
            if backend is None:
                log.debug(f"No backend registered for '{name}', skipping")
                continue
            ordered.append(backend)
        return ordered

    @classmethod
    def with_direct_url_backends(
        cls, downloader: Optional[Downloader] = None, order: Sequence[str] = DEFAULT_SERVICE_ORDER
    ) -> "BackendRegistry":
        """A registry of URL-only backends for each known service."""
        downloader = downloader or Downloader()
        return cls(
            [HttpServiceBackend(name, downloader=downloader) for name in order],
            default_order=order,
        )
