"""
Unit tests for the bounded worker pool.
"""
import asyncio

import pytest

from workflow_engine.engine.pool import WorkerPool


class TestWorkerPool:
    """Bounded submission, result channel and shutdown."""

    @pytest.mark.asyncio
    async def test_jobs_run_and_publish_results(self):
        pool = WorkerPool(size=2, queue_size=4)
        pool.start()

        async def double(x):
            return x * 2

        for i in range(3):
            await pool.submit(f"job-{i}", double, i)
        await pool.join()

        results = dict([await pool.next_result(timeout=1) for _ in range(3)])
        assert results == {"job-0": 0, "job-1": 2, "job-2": 4}
        await pool.stop()
        assert not pool.running

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_size(self):
        pool = WorkerPool(size=2, queue_size=10)
        pool.start()
        active = 0
        peak = 0

        async def job():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1

        for i in range(6):
            await pool.submit(str(i), job)
        await pool.join()
        await pool.stop()

        assert peak == 2

    @pytest.mark.asyncio
    async def test_failures_are_published_not_raised(self):
        pool = WorkerPool(size=1, queue_size=2)
        pool.start()

        async def broken():
            raise ValueError("bad job")

        async def fine():
            return "ok"

        await pool.submit("broken", broken)
        await pool.submit("fine", fine)
        await pool.join()

        job_id, outcome = await pool.next_result(timeout=1)
        assert job_id == "broken"
        assert isinstance(outcome, ValueError)
        assert await pool.next_result(timeout=1) == ("fine", "ok")
        await pool.stop()

    @pytest.mark.asyncio
    async def test_submit_waits_when_queue_is_full(self):
        pool = WorkerPool(size=1, queue_size=1)
        release = asyncio.Event()

        async def blocked():
            await release.wait()

        await pool.submit("a", blocked)
        pending = asyncio.create_task(pool.submit("b", blocked))
        await asyncio.sleep(0.01)
        assert not pending.done()

        pool.start()
        await asyncio.sleep(0.01)
        assert pending.done()
        release.set()
        await pool.stop()

    @pytest.mark.asyncio
    async def test_oldest_result_dropped_when_channel_full(self):
        pool = WorkerPool(size=1, queue_size=5, results_size=2)
        pool.start()

        async def value(v):
            return v

        for i in range(3):
            await pool.submit(str(i), value, i)
        await pool.join()

        assert await pool.next_result(timeout=1) == ("1", 1)
        assert await pool.next_result(timeout=1) == ("2", 2)
        await pool.stop()
