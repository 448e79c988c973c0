"""
Small async JSON client shared by the public metadata services (iTunes,
Deezer, MusicBrainz, LRCLIB).
"""

import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from spotiflac_cli.exceptions import NotFoundError
from spotiflac_cli.media.downloader import USER_AGENT, get_connection_pool

from .rate_limiter import AdaptiveRateLimiter

log = logging.getLogger(__name__)


class MetadataClient:
    """
    Thin wrapper over the shared aiohttp session with per-client rate limiting.

    A session can be injected (tests, or callers managing their own pool);
    otherwise the application-wide connection pool is used.
    """

    def __init__(
        self,
        name: str,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limiter: Optional[AdaptiveRateLimiter] = None,
        timeout: float = 15.0,
    ):
        self.name = name
        self._session = session
        self._rate_limiter = rate_limiter or AdaptiveRateLimiter()
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_connection_pool()

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Performs a rate-limited GET and decodes the JSON body.

        Raises:
            NotFoundError: On HTTP 404.
            aiohttp.ClientError: On any other transport or HTTP error.
        """
        session = await self._get_session()
        await self._rate_limiter.acquire()
        start_time = time.monotonic()
        async with session.get(
            url,
            params=params,
            headers={"User-Agent": USER_AGENT, **(headers or {})},
            timeout=self._timeout,
        ) as r:
            duration_ms = (time.monotonic() - start_time) * 1000
            log.debug(f"{self.name} GET {url} -> {r.status} ({duration_ms:.0f}ms)")
            if r.status == 429:
                await self._rate_limiter.on_429()
            if r.status == 404:
                raise NotFoundError(f"{self.name}: nothing found")
            r.raise_for_status()
            return await r.json(content_type=None)

    async def head_ok(self, url: str, headers: Optional[Dict[str, str]] = None) -> bool:
        """Returns True if a HEAD request (following redirects) answers 200."""
        session = await self._get_session()
        async with session.head(
            url,
            headers={"User-Agent": USER_AGENT, **(headers or {})},
            allow_redirects=True,
            timeout=self._timeout,
        ) as r:
            return r.status == 200
