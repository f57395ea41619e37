"""
Admission Control

Rate limiting and in-flight deduplication for analysis requests.
"""

from .store import (
    AdmissionStore,
    AdmissionStoreError,
    InMemoryAdmissionStore,
    RedisAdmissionStore,
    create_admission_store,
)
from .rate_limiter import RateLimiter
from .lock import AnalysisLock, LockResult

__all__ = [
    "AdmissionStore",
    "AdmissionStoreError",
    "InMemoryAdmissionStore",
    "RedisAdmissionStore",
    "create_admission_store",
    "RateLimiter",
    "AnalysisLock",
    "LockResult",
]
