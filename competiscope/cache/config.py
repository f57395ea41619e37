"""
Cache Configuration

Lifetimes for the composite comparison cache and its sub-caches.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL configuration by data type.

    Full comparisons are expensive (dozens of provider calls, scrapers
    that take a minute) and change slowly, so they live for a week.
    Own-side social metrics come from OAuth dashboards that users watch
    closely, so they turn over every half hour.
    """

    COMPETITOR_ANALYSIS: timedelta = timedelta(days=7)
    SOCIAL_METRICS: timedelta = timedelta(minutes=30)

    @classmethod
    def for_section(cls, section: str) -> timedelta:
        """Get TTL for a section name."""
        if section.startswith("social."):
            return cls.SOCIAL_METRICS
        return cls.COMPETITOR_ANALYSIS


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - CACHE_ENABLED: Enable/disable the composite cache globally
    - COMPETITOR_CACHE_TTL_DAYS / SOCIAL_CACHE_TTL_MINUTES: lifetimes
    - REFRESH_AHEAD_HOURS: queue a background refresh for hits this close to expiry
    """

    enabled: bool = field(default_factory=lambda: os.getenv(
        "CACHE_ENABLED",
        "true"
    ).lower() == "true")

    competitor_ttl: timedelta = field(default_factory=lambda: timedelta(
        days=int(os.getenv("COMPETITOR_CACHE_TTL_DAYS", "7"))
    ))

    social_ttl: timedelta = field(default_factory=lambda: timedelta(
        minutes=int(os.getenv("SOCIAL_CACHE_TTL_MINUTES", "30"))
    ))

    refresh_ahead: timedelta = field(default_factory=lambda: timedelta(
        hours=int(os.getenv("REFRESH_AHEAD_HOURS", "12"))
    ))


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()
