"""
Per-service circuit breaker used by the resolver to stop hammering a
streaming backend that keeps failing.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Dict, Optional

from spotiflac_cli.exceptions import ServiceUnavailableError

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Service skipped
    HALF_OPEN = "half_open"  # One trial attempt allowed


class CircuitBreaker:
    """
    Tracks consecutive failures of one service.

    States:
    - CLOSED: attempts pass through
    - OPEN: too many consecutive failures, attempts are refused until the cooldown ends
    - HALF_OPEN: cooldown over, the next attempt decides whether to close or reopen
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock=time.monotonic,
    ):
        """
        Args:
            name: Service name, used in log messages.
            failure_threshold: Consecutive failures before opening the circuit.
            recovery_timeout: Seconds to wait before allowing a trial attempt.
            clock: Monotonic time source, replaceable in tests.
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def allow(self) -> bool:
        """Returns True if an attempt against this service may proceed."""
        async with self._lock:
            if self._state is CircuitState.OPEN and self._opened_at is not None:
                elapsed = self._clock() - self._opened_at
                if elapsed >= self.recovery_timeout:
                    log.info(
                        f"[yellow]{self.name}: circuit half-open, "
                        f"trying again after {elapsed:.0f}s[/yellow]"
                    )
                    self._state = CircuitState.HALF_OPEN
            return self._state is not CircuitState.OPEN

    async def record_success(self) -> None:
        async with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                log.info(f"[green]✓ {self.name}: circuit closed, service recovered[/green]")
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            if self._state is CircuitState.HALF_OPEN:
                log.warning(
                    f"[yellow]{self.name}: recovery attempt failed, circuit reopened[/yellow]"
                )
                self._open()
            elif (
                self._state is CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                log.error(
                    f"[red]✗ {self.name}: circuit opened after "
                    f"{self._failure_count} consecutive failures, "
                    f"skipping for {self.recovery_timeout:.0f}s[/red]"
                )
                self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()

    async def __aenter__(self):
        if not await self.allow():
            raise ServiceUnavailableError(
                f"{self.name} is temporarily disabled after repeated failures."
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            await self.record_failure()
        else:
            await self.record_success()


class CircuitBreakerBoard:
    """Lazily creates one breaker per service name with shared settings."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, service: str) -> CircuitBreaker:
        breaker = self._breakers.get(service)
        if breaker is None:
            breaker = CircuitBreaker(
                service,
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
            )
            self._breakers[service] = breaker
        return breaker
