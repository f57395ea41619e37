"""
Pytest Configuration and Shared Fixtures

In-memory SQLite session factories, fake provider adapters and sample
section payloads shared by all test modules.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from competiscope.admission.lock import AnalysisLock
from competiscope.admission.rate_limiter import RateLimiter
from competiscope.admission.store import InMemoryAdmissionStore
from competiscope.analysis.models import (
    ADS, BACKLINKS, CONTENT, PERFORMANCE, TECHNICAL, TRAFFIC, AnalysisRequest, Side,
    section_platform,
)
from competiscope.analysis.orchestrator import FanOutOrchestrator
from competiscope.analysis.service import AnalysisService
from competiscope.cache.config import CacheConfig
from competiscope.cache.store import CompetitorCacheStore
from competiscope.database.models import Base
from competiscope.database.session import create_db_engine
from competiscope.plans.lookup import PlanLookup
from competiscope.profiles.competitors import SavedCompetitorStore
from competiscope.profiles.connections import SocialConnectionRegistry
from competiscope.providers.base import ProviderAdapter, ProviderTarget
from competiscope.providers.client import ProviderError, ProviderInputError


# ============================================================================
# Clocks
# ============================================================================

class FakeClock:
    """Settable clock usable as both a time.time and a datetime.utcnow source."""

    def __init__(self, start: Optional[float] = None):
        self.now = start if start is not None else time.time()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    def utcnow(self) -> datetime:
        return datetime.utcfromtimestamp(self.now)


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def cache_config():
    return CacheConfig(
        enabled=True,
        competitor_ttl=timedelta(days=7),
        social_ttl=timedelta(minutes=30),
        refresh_ahead=timedelta(hours=12),
    )


@pytest.fixture
def cache_store(session_factory, cache_config):
    return CompetitorCacheStore(session_factory, cache_config)


# ============================================================================
# Sample Payloads
# ============================================================================

def performance_payload(score: float = 80.0) -> Dict[str, Any]:
    return {
        "lighthouse": {"performance": score, "accessibility": 90.0, "best_practices": 85.0, "seo": 92.0},
        "pagespeed": {"mobile": {"performance_score": score, "largest_contentful_paint_ms": 2400.0}},
    }


def technical_payload(https: bool = True) -> Dict[str, Any]:
    return {
        "is_https": https,
        "status_code": 200,
        "response_time_ms": 320,
        "has_robots_txt": True,
        "has_sitemap": True,
        "sitemap_urls": 42,
        "cdn": "cloudflare",
        "mixed_content": False,
    }


def content_payload(words: int = 800) -> Dict[str, Any]:
    return {
        "title": "Example",
        "meta_description": "An example site",
        "headings": {"h1": 1, "h2": 4, "h3": 2},
        "has_open_graph": True,
        "word_count": words,
        "images_total": 10,
        "images_alt_coverage": 80.0,
    }


def backlinks_payload(total: int = 1200) -> Dict[str, Any]:
    return {
        "total_backlinks": total,
        "referring_domains": total // 10,
        "top_linking_pages": [{"url": f"https://ref{i}.com/page", "backlinks": 10 - i} for i in range(8)],
        "source": "se_ranking",
    }


def traffic_payload(visits: int = 50_000) -> Dict[str, Any]:
    return {
        "monthly_visits": visits,
        "bounce_rate": 45.0,
        "pages_per_visit": 3.2,
        "top_pages": [{"url": f"/page-{i}", "share": 0.1} for i in range(12)],
        "top_queries": [{"query": f"query {i}", "volume": 100} for i in range(12)],
    }


def social_payload(platform: str, handle: str, followers: int = 1000) -> Dict[str, Any]:
    return {
        "platform": platform,
        "handle": handle,
        "followers": followers,
        "avg_likes": 40.0,
        "avg_comments": 5.0,
        "avg_interactions": 45.0,
        "engagement_rate": 4.5,
        "posts_analyzed": 20,
        "top_posts": [{"url": "https://example.com/p/1", "likes": 90, "comments": 10, "shares": 0}],
        "follower_growth": [{"date": "2026-09-01", "followers": followers - 50}],
        "history": [{"date": "2026-09-01", "engagement_rate": 4.1}],
    }


def ads_payload() -> Dict[str, Any]:
    return {"page_name": "Competitor", "active_ads": 3, "platforms": ["facebook"], "ads": []}


SITE_PAYLOADS = {
    PERFORMANCE: performance_payload,
    TECHNICAL: technical_payload,
    CONTENT: content_payload,
    BACKLINKS: backlinks_payload,
    TRAFFIC: traffic_payload,
}


def default_payload(section: str, target: ProviderTarget) -> Dict[str, Any]:
    platform = section_platform(section)
    if platform:
        return social_payload(platform, target.handle)
    if section == ADS:
        return ads_payload()
    return SITE_PAYLOADS[section]()


# ============================================================================
# Fake Providers
# ============================================================================

class FakeAdapter(ProviderAdapter):
    """
    Adapter returning canned payloads.

    behavior maps Side to one of: a payload dict, an exception instance to
    raise, or "hang" to sleep past the timeout.
    """

    def __init__(self, name: str, behavior: Optional[Dict[Side, Any]] = None, timeout: float = 0.5):
        super().__init__(client=None, timeout=timeout)
        self.name = name
        self.behavior = behavior or {}
        self.calls = []

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        self.calls.append(target)
        action = self.behavior.get(target.side)
        if action == "hang":
            await asyncio.sleep(self.timeout * 10)
        if isinstance(action, Exception):
            raise action
        if isinstance(action, dict):
            return action
        return default_payload(self.name, target)


class FakeRegistry:
    """Stand-in for ProviderRegistry holding FakeAdapters keyed by section."""

    def __init__(self, adapters: Optional[Dict[str, FakeAdapter]] = None, with_ads: bool = True):
        self.adapters = adapters or {}
        self.with_ads = with_ads
        self.closed = False

    def adapter_for(self, section: str, side: Side):
        if section == ADS and not self.with_ads:
            return None
        if section not in self.adapters:
            self.adapters[section] = FakeAdapter(section)
        return self.adapters[section]

    def total_calls(self) -> int:
        return sum(len(a.calls) for a in self.adapters.values())

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_registry():
    return FakeRegistry()


def failing(message: str = "boom") -> ProviderError:
    return ProviderError(message)


def missing_input(message: str = "No handle") -> ProviderInputError:
    return ProviderInputError(message)


# ============================================================================
# Requests & Service
# ============================================================================

@pytest.fixture
def make_request():
    def _make(own_handles=None, competitor_handles=None, identity="user-1",
              own="a.com", competitor="b.com", **kwargs) -> AnalysisRequest:
        return AnalysisRequest(
            identity=identity,
            own_site=own,
            competitor_site=competitor,
            own_handles=own_handles or {},
            competitor_handles=competitor_handles or {},
            **kwargs,
        )
    return _make


@pytest.fixture
def service_factory(session_factory, cache_config, fake_registry):
    """Build an AnalysisService over in-memory state with a controllable clock."""
    def _build(registry=None, clock: Optional[FakeClock] = None, rate_limit: int = 3):
        clock = clock or FakeClock()
        store = InMemoryAdmissionStore(clock=clock)
        registry = registry or fake_registry
        return AnalysisService(
            store=CompetitorCacheStore(session_factory, cache_config, clock=clock.utcnow),
            orchestrator=FanOutOrchestrator(registry, ttl=cache_config.competitor_ttl),
            rate_limiter=RateLimiter(store, limit=rate_limit, window_seconds=300, clock=clock),
            lock=AnalysisLock(store, stale_after_seconds=300, clock=clock),
            plans=PlanLookup(session_factory, clock=clock),
            connections=SocialConnectionRegistry(session_factory),
            competitors=SavedCompetitorStore(session_factory),
            cache_config=cache_config,
            clock=clock.utcnow,
        )
    return _build
