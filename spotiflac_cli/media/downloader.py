"""
Handles the low-level downloading of files over HTTP with adaptive chunk sizing
and a shared connection pool.
"""

import asyncio
import logging
import os
from typing import Optional

import aiofiles
import aiohttp

from spotiflac_cli.exceptions import TransferFailedError

log = logging.getLogger(__name__)

USER_AGENT = "spotiflac-cli (+https://github.com/spotiflac/spotiflac-cli)"

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool(max_workers: int = 10) -> aiohttp.ClientSession:
    """
    Gets or creates the shared aiohttp ClientSession used for every HTTP call.

    Args:
        max_workers: Maximum concurrent connections per host (matches config.max_workers).
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_workers * 2,
            limit_per_host=max_workers,
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT, "Accept-Encoding": "gzip, deflate"},
        )
        log.debug(f"Created HTTP pool with limit_per_host={max_workers}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared HTTP connection pool closed.")


class Downloader:
    """A low-level file downloader with retry logic and adaptive chunk sizing."""

    MIN_CHUNK_SIZE = 131072  # 128 KB
    MAX_CHUNK_SIZE = 1048576  # 1 MB

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.5,
        session: Optional[aiohttp.ClientSession] = None,
        max_workers: int = 10,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_workers = max_workers
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_connection_pool(self.max_workers)

    @classmethod
    def _chunk_size_for(cls, speed_bps: float) -> int:
        if speed_bps > 10 * 1024 * 1024:  # > 10 MB/s
            return cls.MAX_CHUNK_SIZE
        if speed_bps > 5 * 1024 * 1024:  # > 5 MB/s
            return 524288
        if speed_bps > 1 * 1024 * 1024:  # > 1 MB/s
            return 262144
        return cls.MIN_CHUNK_SIZE

    async def download_file(self, url: str, destination_path: str) -> int:
        """
        Streams a URL to ``destination_path`` and returns the number of bytes written.

        Retries network errors with exponential backoff. After the last attempt the
        partial file is removed and TransferFailedError is raised.
        """
        last_exception: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                session = await self._get_session()
                async with session.get(url, allow_redirects=True) as response:
                    response.raise_for_status()
                    loop = asyncio.get_running_loop()
                    async with aiofiles.open(destination_path, "wb") as f:
                        bytes_downloaded = 0
                        started = last_check = loop.time()
                        chunk_size = self.MIN_CHUNK_SIZE

                        async for chunk in response.content.iter_chunked(chunk_size):
                            await f.write(chunk)
                            bytes_downloaded += len(chunk)
                            now = loop.time()
                            if now - last_check > 2.0:
                                speed = bytes_downloaded / max(now - started, 1e-6)
                                chunk_size = self._chunk_size_for(speed)
                                last_check = now
                return bytes_downloaded
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{self.max_attempts} for "
                    f"'{os.path.basename(destination_path)}' failed: {e}. Retrying..."
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        await asyncio.to_thread(_remove_quietly, destination_path)
        raise TransferFailedError(
            f"Transfer of '{os.path.basename(destination_path)}' failed: {last_exception}"
        )

    async def download_asset(self, url: str, destination_path: str) -> bool:
        """
        Downloads an auxiliary asset (cover image, lyrics) unless it already exists.
        Returns True if the file is present afterwards.
        """
        if await asyncio.to_thread(os.path.isfile, destination_path):
            return True
        try:
            await self.download_file(url, destination_path)
            return True
        except TransferFailedError as e:
            log.debug(
                f"Failed to download asset '{os.path.basename(destination_path)}': {e}"
            )
            return False


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
