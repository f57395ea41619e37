"""
Caching Layer

- CacheTTL / CacheConfig: lifetimes for comparisons and social metrics
- AnalysisKey / SocialIdentity / CacheFingerprint: cache validity keys

Stores live in competiscope.cache.store (CompetitorCacheStore) and
competiscope.cache.social_cache (SocialMetricsCache).
"""

from .config import CacheTTL, CacheConfig, get_cache_config
from .fingerprint import AnalysisKey, SocialIdentity, CacheFingerprint, PLATFORMS

__all__ = [
    "CacheTTL",
    "CacheConfig",
    "get_cache_config",
    "AnalysisKey",
    "SocialIdentity",
    "CacheFingerprint",
    "PLATFORMS",
]
