"""
Background scheduler: schedule ticks, deferred delay continuations and the
stale-execution sweep, each as an asyncio task.
"""

import asyncio
import heapq
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ..config import Config, config as default_config

logger = logging.getLogger(__name__)

Continuation = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """
    Drives time-based work for the engine.

    ``binder`` and ``recorder`` are attached after construction because the
    graph walker (which the binder uses) needs the scheduler first.
    """

    def __init__(
        self,
        settings: Optional[Config] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or default_config
        self.clock = clock
        self.binder = None
        self.recorder = None
        self._deferred: List[Tuple[datetime, int, Continuation]] = []
        self._counter = itertools.count()
        self._wakeup = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._inflight: set = set()

    @property
    def pending(self) -> int:
        return len(self._deferred)

    def call_at(self, when: datetime, callback: Continuation):
        """Run ``callback()`` (a coroutine function) at ``when``."""
        heapq.heappush(self._deferred, (when, next(self._counter), callback))
        self._wakeup.set()

    async def run_due(self, now: Optional[datetime] = None) -> int:
        """
        Run every continuation due at ``now``.

        Returns:
            Number of continuations run
        """
        now = now or self.clock()
        due = []
        while self._deferred and self._deferred[0][0] <= now:
            due.append(heapq.heappop(self._deferred)[2])
        if due:
            results = await asyncio.gather(*(callback() for callback in due), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Deferred continuation failed: {result}")
        return len(due)

    def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._deferred_loop(), name="scheduler-deferred"),
        ]
        if self.binder is not None:
            self._tasks.append(asyncio.create_task(self._tick_loop(), name="scheduler-tick"))
        if self.recorder is not None:
            self._tasks.append(asyncio.create_task(self._sweep_loop(), name="scheduler-sweep"))
        logger.info(f"Scheduler started ({len(self._tasks)} loops)")

    async def stop(self):
        for task in list(self._tasks) + list(self._inflight):
            task.cancel()
        await asyncio.gather(*self._tasks, *self._inflight, return_exceptions=True)
        self._tasks = []
        self._inflight.clear()
        if self._deferred:
            logger.warning(f"Scheduler stopped with {len(self._deferred)} deferred continuation(s) pending")
        logger.info("Scheduler stopped")

    async def _tick_loop(self):
        while True:
            try:
                await self.binder.on_tick(self.clock())
            except Exception as e:
                logger.error(f"Schedule tick failed: {e}")
            await asyncio.sleep(self.settings.scheduler_tick_seconds)

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            try:
                await self.recorder.sweep_stale(self.settings.stale_execution_grace_seconds)
            except Exception as e:
                logger.error(f"Stale execution sweep failed: {e}")

    async def _deferred_loop(self):
        while True:
            self._wakeup.clear()
            if self._deferred:
                delay = (self._deferred[0][0] - self.clock()).total_seconds()
            else:
                delay = None

            if delay is not None and delay <= 0:
                now = self.clock()
                while self._deferred and self._deferred[0][0] <= now:
                    callback = heapq.heappop(self._deferred)[2]
                    task = asyncio.create_task(callback())
                    self._inflight.add(task)
                    task.add_done_callback(self._finished)
                continue

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def _finished(self, task: asyncio.Task):
        self._inflight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Deferred continuation failed: {task.exception()}")
