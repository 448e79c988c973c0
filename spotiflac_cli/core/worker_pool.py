"""
Bounded asyncio worker pool with sliding-window admission.

At most ``max_workers`` tasks are in flight at once. A new task is admitted as
soon as any running one finishes, so a slow item never holds back the rest of
its batch. Cancellation is cooperative: once the cancel event is set nothing new
is admitted and in-flight tasks are allowed to drain.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
)

log = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


@dataclass
class TaskResult:
    """Outcome of one submitted task, reported in input order."""

    index: int
    value: Any = None
    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


class WorkerPool:
    """Runs coroutine factories with a fixed upper bound on concurrency."""

    def __init__(self, max_workers: int = 10, name: str = "worker"):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self.name = name
        self.peak_in_flight = 0

    async def run(
        self,
        factories: Iterable[TaskFactory],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[TaskResult]:
        """
        Admits each factory's coroutine into the window and waits for all of them.

        Args:
            factories: Zero-argument callables returning an awaitable.
            cancel_event: When set, stops admission; running tasks still finish.

        Returns:
            One TaskResult per factory, in input order. Factories that were never
            admitted because of cancellation come back with ``cancelled=True``.
        """
        pending_factories = list(factories)
        results: List[Optional[TaskResult]] = [None] * len(pending_factories)
        source = iter(enumerate(pending_factories))
        active: Dict[asyncio.Task, int] = {}

        def try_admit() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                return False
            try:
                index, factory = next(source)
            except StopIteration:
                return False
            task = asyncio.create_task(self._guard(factory))
            active[task] = index
            self.peak_in_flight = max(self.peak_in_flight, len(active))
            return True

        while len(active) < self.max_workers and try_admit():
            pass

        while active:
            done, _ = await asyncio.wait(
                set(active), return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                index = active.pop(task)
                value, error = task.result()
                if error is not None:
                    log.error(
                        f"[red]✗ {self.name} task #{index} failed: {error}[/red]"
                    )
                results[index] = TaskResult(index=index, value=value, error=error)
            while len(active) < self.max_workers and try_admit():
                pass

        skipped = 0
        for index, result in enumerate(results):
            if result is None:
                results[index] = TaskResult(index=index, cancelled=True)
                skipped += 1
        if skipped:
            log.info(
                f"[yellow]○ {self.name}: {skipped} task(s) not started "
                f"(cancelled)[/yellow]"
            )
        return results  # type: ignore[return-value]

    async def map(
        self,
        func: Callable[[Any], Awaitable[Any]],
        items: Iterable[Any],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[TaskResult]:
        """Convenience wrapper: runs ``func(item)`` for every item."""
        return await self.run(
            [lambda item=item: func(item) for item in items], cancel_event
        )

    @staticmethod
    async def _guard(factory: TaskFactory) -> Tuple[Any, Optional[BaseException]]:
        # Failures are captured so a crashing task never aborts its siblings
        try:
            return await factory(), None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return None, e


class BackgroundTasks:
    """
    A bounded registry of fire-and-forget jobs whose completion can still be
    awaited, used for post-download work such as embedding lyrics.
    """

    def __init__(self, max_concurrent: int = 2, name: str = "background"):
        self.name = name
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def submit(self, factory: TaskFactory, label: str = "") -> asyncio.Task:
        task = asyncio.create_task(self._run(factory, label))
        self._tasks.add(task)
        return task

    async def _run(self, factory: TaskFactory, label: str) -> Any:
        async with self._semaphore:
            try:
                result = await factory()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                log.warning(
                    f"[yellow]{self.name} task failed{f' for {label}' if label else ''}: "
                    f"{e}[/yellow]"
                )
                return None
            self.completed += 1
            return result

    async def join(self) -> None:
        """Waits until every registered task, including late submissions, is done."""
        while True:
            waiting = [t for t in self._tasks if not t.done()]
            if not waiting:
                break
            await asyncio.gather(*waiting, return_exceptions=True)
        self._tasks = {t for t in self._tasks if not t.done()}

    async def cancel(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
