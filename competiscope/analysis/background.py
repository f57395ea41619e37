"""
Background Refresh Queue

Detached cache refreshes, submitted from request handlers and run by a
single worker task. A job never blocks or fails the request that queued
it: submission is non-blocking and every job error is logged and
dropped. While a job for an AnalysisKey is queued or running, further
submissions for that key are coalesced into it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from .errors import AdmissionRejected
from .models import AnalysisRequest

logger = logging.getLogger(__name__)

Runner = Callable[[AnalysisRequest], Awaitable[object]]


class BackgroundRefreshQueue:
    """
    Usage:
        queue = BackgroundRefreshQueue(service.refresh_in_background)
        await queue.start()
        queue.submit(request)
        ...
        await queue.stop()
    """

    def __init__(self, runner: Runner, maxsize: int = 100):
        self._runner = runner
        self._queue: "asyncio.Queue[AnalysisRequest]" = asyncio.Queue(maxsize=maxsize)
        self._pending: set = set()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._stats = {"submitted": 0, "coalesced": 0, "dropped": 0, "completed": 0, "failed": 0}

    def submit(self, request: AnalysisRequest) -> bool:
        """Queue a refresh. Returns False if coalesced or the queue is full."""
        key = str(request.key)
        if key in self._pending:
            self._stats["coalesced"] += 1
            logger.debug(f"Refresh for {key} already queued")
            return False
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            self._stats["dropped"] += 1
            logger.warning(f"Refresh queue full, dropping refresh for {key}")
            return False
        self._pending.add(key)
        self._stats["submitted"] += 1
        logger.info(f"Queued background refresh for {key}")
        return True

    async def _run_one(self, request: AnalysisRequest) -> None:
        key = str(request.key)
        try:
            await self._runner(request)
            self._stats["completed"] += 1
            logger.info(f"Background refresh done for {key}")
        except AdmissionRejected as e:
            logger.info(f"Background refresh for {key} skipped: {e.message}")
        except Exception as e:
            self._stats["failed"] += 1
            logger.error(f"Background refresh failed for {key}: {e}")
        finally:
            self._pending.discard(key)
            self._queue.task_done()

    async def start(self):
        """Start the worker task."""
        if self._running:
            return
        self._running = True

        async def worker():
            while self._running:
                request = await self._queue.get()
                await self._run_one(request)

        self._task = asyncio.create_task(worker())
        logger.info("Started background refresh worker")

    async def stop(self):
        """Stop the worker task. Queued jobs are abandoned."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stopped background refresh worker")

    async def join(self):
        """Wait until every queued job has been processed."""
        await self._queue.join()

    def get_stats(self) -> Dict[str, int]:
        return {**self._stats, "queued": self._queue.qsize()}
