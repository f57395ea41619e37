"""
Analysis Lock

Deduplicates concurrent analyses per AnalysisKey. A second request for a
key already in flight is rejected with the age of the running attempt;
a record older than the staleness threshold is evicted and replaced, so
a run that never released its lock stops blocking retries on its own.
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from .store import AdmissionStore, AdmissionStoreError, InMemoryAdmissionStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "analysis:"


@dataclass
class LockResult:
    """Outcome of try_acquire."""
    acquired: bool
    age_ms: int = 0
    token: Optional[str] = None

    def retry_after(self, stale_after_seconds: float) -> int:
        """Seconds until the in-flight record goes stale."""
        return max(1, math.ceil(stale_after_seconds - self.age_ms // 1000))


class AnalysisLock:
    """
    At-most-one in-flight analysis per key.

    Callers must release on every exit path:

        result = await lock.try_acquire(key)
        if not result.acquired:
            ...
        try:
            ...
        finally:
            await lock.release(key, result.token)
    """

    def __init__(
        self,
        store: Optional[AdmissionStore] = None,
        stale_after_seconds: float = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else InMemoryAdmissionStore(clock=clock)
        self.stale_after_seconds = stale_after_seconds
        self._clock = clock
        self._guard = asyncio.Lock()

    async def try_acquire(self, key: str) -> LockResult:
        now = self._clock()
        token = uuid.uuid4().hex
        record = {"started_at": now, "token": token}
        store_key = KEY_PREFIX + key

        async with self._guard:
            try:
                existing = await self.store.get(store_key)
                if existing is not None:
                    age = now - existing["started_at"]
                    if age < self.stale_after_seconds:
                        logger.info(f"Analysis already in flight for {key} ({age:.0f}s old)")
                        return LockResult(acquired=False, age_ms=int(age * 1000))
                    logger.warning(f"Evicting stale analysis lock for {key} ({age:.0f}s old)")
                    await self.store.delete(store_key)

                # The TTL is a backstop; staleness is judged from started_at.
                if await self.store.set_if_absent(
                    store_key, record, ttl_seconds=self.stale_after_seconds * 2
                ):
                    return LockResult(acquired=True, token=token)

                # Lost a race with another process
                existing = await self.store.get(store_key) or {"started_at": now}
                age = max(0.0, now - existing["started_at"])
                return LockResult(acquired=False, age_ms=int(age * 1000))

            except AdmissionStoreError as e:
                logger.error(f"Lock store unavailable, proceeding without lock for {key}: {e}")
                return LockResult(acquired=True, token=None)

    async def release(self, key: str, token: Optional[str] = None) -> None:
        """
        Release the lock for key.

        With a token, only the holder that acquired it can release; a run
        whose lock was evicted as stale will not drop its successor's lock.
        """
        store_key = KEY_PREFIX + key
        try:
            if token is not None:
                existing = await self.store.get(store_key)
                if existing is None or existing.get("token") != token:
                    logger.debug(f"Lock for {key} no longer held by this run")
                    return
            await self.store.delete(store_key)
        except AdmissionStoreError as e:
            logger.error(f"Failed to release analysis lock for {key}: {e}")

    async def is_locked(self, key: str) -> bool:
        try:
            existing = await self.store.get(KEY_PREFIX + key)
        except AdmissionStoreError:
            return False
        return existing is not None and (
            self._clock() - existing["started_at"] < self.stale_after_seconds
        )
