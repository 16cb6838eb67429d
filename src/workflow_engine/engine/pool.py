"""
Bounded asyncio worker pool for workflow executions.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Job = Tuple[str, Callable[..., Awaitable[Any]], tuple]


class WorkerPool:
    """
    Fixed set of workers fed through a bounded queue.

    ``submit`` waits while the queue is full, so a burst of events slows the
    event source down instead of piling up unbounded tasks. Every finished
    job lands on ``results`` as ``(job_id, result_or_exception)``; when nobody
    drains the channel the oldest result is dropped.
    """

    def __init__(self, size: int = 8, queue_size: int = 256, results_size: int = 1000):
        self.size = size
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.results: asyncio.Queue = asyncio.Queue(maxsize=results_size)
        self._workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self):
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"workflow-worker-{index}")
            for index in range(self.size)
        ]
        logger.info(f"Started {self.size} workflow workers")

    async def stop(self, drain: bool = True):
        """Stop the workers, optionally after the queued jobs finish."""
        if drain and self._workers:
            await self.queue.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Workflow workers stopped")

    async def submit(self, job_id: str, func: Callable[..., Awaitable[Any]], *args: Any):
        """Queue a job; waits while the queue is full."""
        await self.queue.put((job_id, func, args))

    async def join(self):
        """Wait until every queued job has finished."""
        await self.queue.join()

    async def next_result(self, timeout: Optional[float] = None) -> Tuple[str, Any]:
        return await asyncio.wait_for(self.results.get(), timeout=timeout)

    def _publish(self, job_id: str, outcome: Any):
        if self.results.full():
            self.results.get_nowait()
        self.results.put_nowait((job_id, outcome))

    async def _worker(self, index: int):
        while True:
            job_id, func, args = await self.queue.get()
            try:
                outcome = await func(*args)
            except asyncio.CancelledError:
                self.queue.task_done()
                raise
            except Exception as e:
                logger.error(f"Job {job_id} failed in worker {index}: {e}")
                outcome = e
            self._publish(job_id, outcome)
            self.queue.task_done()
