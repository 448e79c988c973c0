"""
Rate limiters for the public metadata services queried during library repair.
"""

import asyncio
import logging
import time

log = logging.getLogger(__name__)


class FixedDelayLimiter:
    """
    Serialises calls and sleeps a fixed delay before each one.

    MusicBrainz allows roughly one request per second per client, so its calls
    go through one of these with a delay slightly above that.
    """

    def __init__(self, delay: float = 1.1, sleep=asyncio.sleep):
        self.delay = delay
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.calls = 0

    async def acquire(self) -> None:
        async with self._lock:
            await self._sleep(self.delay)
            self.calls += 1

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class AdaptiveRateLimiter:
    """
    Dynamically adjusts call rate based on API feedback (429 errors).
    """

    def __init__(
        self, initial_calls_per_second: float = 8.0, max_calls_per_second: float = 12.0
    ):
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._min_interval = 1.0 / self._rate
        self._last_call_time = 0.0
        self._last_429_time = 0.0
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def on_429(self) -> None:
        """Called when a 429 error is received. Halves the current request rate."""
        async with self._lock:
            self._rate = max(1.0, self._rate * 0.5)  # minimum 1 call/sec
            self._min_interval = 1.0 / self._rate
            self._last_429_time = time.monotonic()
            log.warning(
                f"[yellow]Rate limit hit. New rate: {self._rate:.1f} calls/s[/yellow]"
            )

    async def acquire(self) -> None:
        """Waits if necessary to respect the current rate limit."""
        async with self._lock:
            # Gradually recover the rate if no 429 errors have occurred recently
            if time.monotonic() - self._last_429_time > 300:
                self._rate = min(self._max_rate, self._rate * 1.005)
                self._min_interval = 1.0 / self._rate

            loop = asyncio.get_running_loop()
            time_since_last = loop.time() - self._last_call_time
            if time_since_last < self._min_interval:
                await asyncio.sleep(self._min_interval - time_since_last)

            self._last_call_time = loop.time()
