"""
Sliding-Window Rate Limiter

Limits full analyses per caller identity: at most `limit` admitted
requests within the trailing `window_seconds`. A background sweep evicts
identities whose windows are empty so the table stays bounded.
"""

import asyncio
import logging
import math
import time
from typing import Callable, List, Optional

from .store import AdmissionStore, AdmissionStoreError, InMemoryAdmissionStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit:"


class RateLimiter:
    """
    Per-identity sliding window over request timestamps.

    Usage:
        limiter = RateLimiter(limit=3, window_seconds=300)
        if not await limiter.allow("user@example.com"):
            retry_after = await limiter.retry_after("user@example.com")
    """

    def __init__(
        self,
        store: Optional[AdmissionStore] = None,
        limit: int = 3,
        window_seconds: float = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else InMemoryAdmissionStore(clock=clock)
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def _recent(self, timestamps: Optional[List[float]], now: float) -> List[float]:
        cutoff = now - self.window_seconds
        return [t for t in (timestamps or []) if t > cutoff]

    async def allow(self, identity: str) -> bool:
        """
        Admit one request for `identity` if the window has room.

        Records the request timestamp on admission. A store outage admits
        the request rather than blocking every caller.
        """
        now = self._clock()
        key = KEY_PREFIX + identity

        try:
            timestamps = self._recent(await self.store.get(key), now)
            if len(timestamps) >= self.limit:
                logger.info(
                    f"Rate limit reached for {identity}: "
                    f"{len(timestamps)}/{self.limit} in {self.window_seconds}s"
                )
                return False
            timestamps.append(now)
            await self.store.set(key, timestamps, ttl_seconds=self.window_seconds)
        except AdmissionStoreError as e:
            logger.error(f"Rate limiter store unavailable, admitting {identity}: {e}")
        return True

    async def retry_after(self, identity: str) -> int:
        """Seconds until the oldest counted request leaves the window."""
        now = self._clock()
        try:
            timestamps = self._recent(await self.store.get(KEY_PREFIX + identity), now)
        except AdmissionStoreError:
            return math.ceil(self.window_seconds)
        if len(timestamps) < self.limit:
            return 0
        oldest = min(timestamps)
        return max(1, math.ceil(self.window_seconds - (now - oldest)))

    async def sweep(self) -> int:
        """Evict identities with no timestamps inside the window. Returns count evicted."""
        now = self._clock()
        evicted = 0
        try:
            for key in await self.store.keys(KEY_PREFIX):
                if not self._recent(await self.store.get(key), now):
                    if await self.store.delete(key):
                        evicted += 1
        except AdmissionStoreError as e:
            logger.error(f"Rate limiter sweep failed: {e}")
        if evicted:
            logger.debug(f"Rate limiter sweep evicted {evicted} identities")
        return evicted

    # =========================================================================
    # Background sweep
    # =========================================================================

    async def start_background_sweep(self, interval_seconds: float = 600):
        """Start the periodic sweep task."""
        if self._running:
            logger.warning("Rate limiter sweep already running")
            return

        self._running = True

        async def sweep_loop():
            while self._running:
                await asyncio.sleep(interval_seconds)
                try:
                    await self.sweep()
                except Exception as e:
                    logger.error(f"Rate limiter sweep error: {e}")

        self._task = asyncio.create_task(sweep_loop())
        logger.info(f"Rate limiter sweep started (interval: {interval_seconds}s)")

    async def stop_background_sweep(self):
        """Stop the periodic sweep task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Rate limiter sweep stopped")
