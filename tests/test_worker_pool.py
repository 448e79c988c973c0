"""Tests for the bounded worker pool and background task registry."""

import asyncio

import pytest

from spotiflac_cli.core.worker_pool import BackgroundTasks, WorkerPool


class TestWorkerPool:
    @pytest.mark.asyncio
    async def test_never_exceeds_max_workers(self):
        pool = WorkerPool(max_workers=3)
        running = 0
        observed = []

        async def job(n):
            nonlocal running
            running += 1
            observed.append(running)
            await asyncio.sleep(0.01 * (n % 4 + 1))
            running -= 1
            return n

        results = await pool.map(job, range(20))

        assert max(observed) <= 3
        assert pool.peak_in_flight == 3
        assert [r.value for r in results] == list(range(20))
        assert all(r.ok for r in results)

    @pytest.mark.asyncio
    async def test_slow_item_does_not_block_admission(self):
        pool = WorkerPool(max_workers=2)
        finished = []

        async def job(n):
            await asyncio.sleep(0.2 if n == 0 else 0.01)
            finished.append(n)

        await pool.map(job, range(6))
        # All fast items complete while the slow one is still running
        assert finished[-1] == 0

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        pool = WorkerPool(max_workers=2)

        async def job(n):
            if n == 1:
                raise RuntimeError("boom")
            return n * 10

        results = await pool.map(job, range(4))
        assert [r.ok for r in results] == [True, False, True, True]
        assert isinstance(results[1].error, RuntimeError)
        assert results[3].value == 30

    @pytest.mark.asyncio
    async def test_cancel_stops_admission_but_drains_in_flight(self):
        pool = WorkerPool(max_workers=2)
        cancel = asyncio.Event()
        started = []

        async def job(n):
            started.append(n)
            if n == 0:
                cancel.set()
            await asyncio.sleep(0.01)
            return n

        results = await pool.map(job, range(10), cancel_event=cancel)

        assert sorted(started) == [0, 1]
        assert results[0].ok and results[1].ok
        assert all(r.cancelled for r in results[2:])

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await WorkerPool(4).run([]) == []

    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError):
            WorkerPool(0)


class TestBackgroundTasks:
    @pytest.mark.asyncio
    async def test_join_waits_for_all_and_counts(self):
        tasks = BackgroundTasks(max_concurrent=2)
        done = []

        async def job(n):
            await asyncio.sleep(0.01)
            if n == 2:
                raise ValueError("no lyrics")
            done.append(n)
            return n

        for n in range(4):
            tasks.submit(lambda n=n: job(n), label=f"track {n}")
        assert tasks.pending == 4

        await tasks.join()
        assert sorted(done) == [0, 1, 3]
        assert tasks.completed == 3
        assert tasks.failed == 1
        assert tasks.pending == 0

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        tasks = BackgroundTasks(max_concurrent=2)
        running = 0
        peak = 0

        async def job():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        for _ in range(6):
            tasks.submit(job)
        await tasks.join()
        assert peak == 2

    @pytest.mark.asyncio
    async def test_cancel(self):
        tasks = BackgroundTasks()
        tasks.submit(lambda: asyncio.sleep(10))
        await tasks.cancel()
        assert tasks.pending == 0
