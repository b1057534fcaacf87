"""
Recalculation queue for fire-and-forget score updates.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)


@dataclass
class RecalculationRequest:
    recommendation_id: str
    trigger_source: str
    requested_at: datetime


class RecalculationQueue:
    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[RecalculationRequest] = asyncio.Queue(maxsize=maxsize)

    def publish_nowait(self, request: RecalculationRequest) -> bool:
        """Enqueue without waiting; False when the queue is full."""
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self) -> RecalculationRequest:
        return await self._queue.get()

    def size(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        await self._queue.join()

    def task_done(self) -> None:
        self._queue.task_done()


class KeyedLock:
    """
    Per-key asyncio locks, created on first use and dropped once no task
    holds or waits for them.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


Handler = Callable[[RecalculationRequest], Awaitable[object]]


class RecalculationWorkerPool:
    def __init__(self, queue: RecalculationQueue, handler: Handler, workers: int = 4):
        self._queue = queue
        self._handler = handler
        self._workers = max(1, workers)
        self._tasks: List[asyncio.Task] = []
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self._run(), name=f"recalc-worker-{i}")
            for i in range(self._workers)
        ]

    async def stop(self) -> None:
        self._stop.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _run(self) -> None:
        while not self._stop.is_set():
            request = await self._queue.get()
            try:
                await self._handler(request)
            except Exception:
                logger.exception(
                    "Recalculation handler crashed for %s (trigger=%s)",
                    request.recommendation_id, request.trigger_source,
                )
            finally:
                self._queue.task_done()
