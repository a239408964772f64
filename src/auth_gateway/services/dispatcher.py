"""Background job dispatcher — runs work after the response has been sent.

Jobs are coroutine factories placed on an ``asyncio.Queue`` and executed by
a small pool of worker tasks.  A failing job is logged here and dropped; the
request that submitted it has already returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Job = tuple[str, Callable[..., Awaitable[Any]], tuple[Any, ...]]


class BackgroundDispatcher:
    """Queue plus worker tasks, started and stopped with the application."""

    def __init__(self, workers: int = 2) -> None:
        self._worker_count = workers
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._run(i), name=f"dispatcher-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Background dispatcher started with %d workers", self._worker_count)

    def submit(self, name: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Queue ``func(*args)`` for execution; never blocks the caller."""
        if not self._workers:
            self.start()
        self._queue.put_nowait((name, func, args))
        logger.debug("Queued background job %s", name)

    async def drain(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        """Finish outstanding jobs, then cancel the workers."""
        if not self._workers:
            return
        await self.drain()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Background dispatcher stopped")

    async def _run(self, worker_id: int) -> None:
        while True:
            name, func, args = await self._queue.get()
            try:
                await func(*args)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Background job %s failed (worker %d)", name, worker_id)
            finally:
                self._queue.task_done()
