"""
Admission State Stores

Process-wide admission state (rate-limit windows, in-flight analysis
locks) lives behind a small async key-value interface so the same
limiter and lock logic runs against:
- InMemoryAdmissionStore: a dict, for a single API process
- RedisAdmissionStore: redis.asyncio, for multi-instance deployments

Values are JSON-serializable. Every key may carry a TTL so abandoned
entries disappear even when nothing sweeps them.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class AdmissionStoreError(Exception):
    """Raised when the backing store cannot be reached."""


class AdmissionStore:
    """
    Async key-value interface used by RateLimiter and AnalysisLock.

    Implementations must make set_if_absent atomic with respect to
    other callers of the same store.
    """

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        raise NotImplementedError

    async def set_if_absent(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def keys(self, prefix: str) -> List[str]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


# =============================================================================
# IN-PROCESS STORE
# =============================================================================

class InMemoryAdmissionStore(AdmissionStore):
    """Dict-backed store. Expired keys are dropped lazily on access."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl_seconds: Optional[float]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        self._data[key] = (value, self._expiry(ttl_seconds))

    async def set_if_absent(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl_seconds))
            return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str) -> List[str]:
        return [k for k in list(self._data) if k.startswith(prefix) and self._live(k)]

    def __len__(self) -> int:
        return len(self._data)


# =============================================================================
# REDIS STORE
# =============================================================================

class RedisAdmissionStore(AdmissionStore):
    """
    Redis-backed store shared by every API instance.

    set_if_absent maps to SET NX, so lock acquisition is atomic across
    processes. Read-modify-write sequences (the rate-limit window) are not
    transactional: two instances admitting the same identity at the same
    instant may both succeed.
    """

    def __init__(
        self,
        redis_url: str,
        namespace: str = "competiscope:admission",
        redis: Optional[Redis] = None,
    ):
        self.redis_url = redis_url
        self.namespace = namespace
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def _client(self) -> Redis:
        if self._redis is None:
            self._pool = ConnectionPool.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
            )
            self._redis = Redis(connection_pool=self._pool)
            logger.info(f"Admission store connected to {self.redis_url}")
        return self._redis

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await (await self._client()).get(self._key(key))
        except RedisError as e:
            raise AdmissionStoreError(f"Redis get failed for {key}: {e}") from e
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ex = max(1, int(ttl_seconds)) if ttl_seconds else None
        try:
            await (await self._client()).set(self._key(key), json.dumps(value), ex=ex)
        except RedisError as e:
            raise AdmissionStoreError(f"Redis set failed for {key}: {e}") from e

    async def set_if_absent(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        ex = max(1, int(ttl_seconds)) if ttl_seconds else None
        try:
            created = await (await self._client()).set(
                self._key(key), json.dumps(value), ex=ex, nx=True
            )
        except RedisError as e:
            raise AdmissionStoreError(f"Redis set-nx failed for {key}: {e}") from e
        return bool(created)

    async def delete(self, key: str) -> bool:
        try:
            return await (await self._client()).delete(self._key(key)) > 0
        except RedisError as e:
            raise AdmissionStoreError(f"Redis delete failed for {key}: {e}") from e

    async def keys(self, prefix: str) -> List[str]:
        strip = len(self.namespace) + 1
        found = []
        try:
            client = await self._client()
            async for key in client.scan_iter(match=f"{self._key(prefix)}*", count=100):
                found.append(key[strip:])
        except RedisError as e:
            raise AdmissionStoreError(f"Redis scan failed for {prefix}: {e}") from e
        return found

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()
        if self._pool is not None:
            await self._pool.disconnect()
        logger.info("Admission store closed")


def create_admission_store(settings) -> AdmissionStore:
    """Build the store selected by ADMISSION_BACKEND."""
    if settings.ADMISSION_BACKEND.lower() == "redis":
        return RedisAdmissionStore(settings.REDIS_URL)
    return InMemoryAdmissionStore()
