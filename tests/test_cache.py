"""
Tests for the caching layer.

These tests verify:
- Domain and handle normalization
- Fingerprint matching (key + both social identities)
- Cache store lookup, upsert and section patching
- Graceful degradation on database errors
- Social metrics sub-cache expiry and account matching
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from competiscope.analysis.models import (
    BACKLINKS, PERFORMANCE, SOCIAL_INSTAGRAM, CompositeResult, Side, unavailable,
)
from competiscope.analysis.comparison import generate_comparison
from competiscope.cache.config import CacheConfig, CacheTTL
from competiscope.cache.fingerprint import AnalysisKey, CacheFingerprint, SocialIdentity
from competiscope.cache.social_cache import SocialMetricsCache
from competiscope.cache.store import CompetitorCacheStore
from competiscope.database.models import CompetitorCacheEntry
from competiscope.utils.domains import normalize_domain, normalize_handle

from tests.conftest import backlinks_payload, performance_payload, social_payload


def make_fingerprint(own=None, competitor=None, identity="user-1") -> CacheFingerprint:
    return CacheFingerprint(
        key=AnalysisKey.build(identity, "a.com", "b.com"),
        own_social=SocialIdentity.from_handles(own),
        competitor_social=SocialIdentity.from_handles(competitor),
    )


def make_result(created_at=None, ttl=timedelta(days=7), instagram_followers=1000) -> CompositeResult:
    created_at = created_at or datetime.utcnow()
    own = {
        PERFORMANCE: performance_payload(80.0),
        BACKLINKS: backlinks_payload(1200),
        SOCIAL_INSTAGRAM: social_payload("instagram", "acme", instagram_followers),
    }
    competitor = {
        PERFORMANCE: performance_payload(60.0),
        BACKLINKS: backlinks_payload(3000),
        SOCIAL_INSTAGRAM: social_payload("instagram", "rival", 5000),
    }
    return CompositeResult(
        own_domain="a.com",
        competitor_domain="b.com",
        own_side=own,
        competitor_side=competitor,
        comparison=generate_comparison(own, competitor),
        created_at=created_at,
        expires_at=created_at + ttl,
    )


# =============================================================================
# NORMALIZATION & FINGERPRINT TESTS
# =============================================================================

class TestNormalization:
    """Site and handle normalization."""

    def test_normalize_domain(self):
        assert normalize_domain("https://www.Example.com/") == "example.com"
        assert normalize_domain("http://example.com") == "example.com"
        assert normalize_domain("example.com") == "example.com"

    def test_normalize_handle_strips_prefixes(self):
        assert normalize_handle("@Acme") == "acme"
        assert normalize_handle("https://www.instagram.com/acme/") == "acme"
        assert normalize_handle("https://linkedin.com/company/acme-inc") == "acme-inc"
        assert normalize_handle("facebook.com/Acme?ref=bookmarks") == "acme"

    def test_blank_handle_is_absent(self):
        assert normalize_handle("") is None
        assert normalize_handle("   ") is None
        assert normalize_handle(None) is None


class TestFingerprint:
    """Cache validity matching."""

    def test_key_normalizes_inputs(self):
        assert AnalysisKey.build("User-1", "https://www.A.com/", "b.com") == \
            AnalysisKey.build("user-1", "a.com", "http://b.com")

    def test_equal_after_normalization(self):
        first = make_fingerprint(own={"instagram": "@Acme"})
        second = make_fingerprint(own={"instagram": "https://instagram.com/acme"})
        assert first.matches(second)

    def test_both_absent_match(self):
        assert make_fingerprint().matches(make_fingerprint(own={"facebook": ""}))

    def test_single_platform_mismatch_either_side(self):
        base = make_fingerprint(own={"instagram": "acme"}, competitor={"linkedin": "rival"})

        assert not base.matches(make_fingerprint(own={"instagram": "acme2"}, competitor={"linkedin": "rival"}))
        assert not base.matches(make_fingerprint(own={"instagram": "acme"}))
        assert base.mismatched_platforms(make_fingerprint(own={"instagram": "acme"})) == {
            "own": [],
            "competitor": ["linkedin"],
        }

    def test_different_identity_mismatch(self):
        assert not make_fingerprint(identity="user-1").matches(make_fingerprint(identity="user-2"))


class TestCacheConfig:
    """TTL defaults."""

    def test_ttl_defaults(self):
        assert CacheTTL.COMPETITOR_ANALYSIS == timedelta(days=7)
        assert CacheTTL.SOCIAL_METRICS == timedelta(minutes=30)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("COMPETITOR_CACHE_TTL_DAYS", "3")
        assert CacheConfig().competitor_ttl == timedelta(days=3)


# =============================================================================
# CACHE STORE TESTS
# =============================================================================

class TestCompetitorCacheStore:
    """Lookup, upsert and patching."""

    def test_hit_on_exact_fingerprint(self, cache_store):
        fp = make_fingerprint(own={"instagram": "acme"})
        cache_store.write(fp, make_result())

        hit = cache_store.lookup(make_fingerprint(own={"instagram": "@ACME"}))

        assert hit is not None
        assert hit.from_cache
        assert hit.own_side[PERFORMANCE] == performance_payload(80.0)

    def test_social_mismatch_is_miss(self, cache_store):
        cache_store.write(make_fingerprint(own={"instagram": "acme"}), make_result())

        assert cache_store.lookup(make_fingerprint(own={"instagram": "other"})) is None
        assert cache_store.lookup(make_fingerprint()) is None
        assert cache_store.get_stats()["misses"] == 2

    def test_expired_is_miss_unless_ignored(self, cache_store):
        fp = make_fingerprint()
        cache_store.write(fp, make_result(created_at=datetime.utcnow() - timedelta(days=8)))

        assert cache_store.lookup(fp) is None
        assert cache_store.lookup(fp, ignore_expiration=True) is not None

    def test_write_replaces_row_for_key(self, cache_store, session_factory):
        cache_store.write(make_fingerprint(own={"instagram": "acme"}), make_result())
        cache_store.write(make_fingerprint(own={"instagram": "acme2"}), make_result(instagram_followers=7))

        with session_factory() as db:
            assert db.query(CompetitorCacheEntry).count() == 1

        assert cache_store.lookup(make_fingerprint(own={"instagram": "acme"})) is None
        latest = cache_store.lookup(make_fingerprint(own={"instagram": "acme2"}))
        assert latest.own_side[SOCIAL_INSTAGRAM]["followers"] == 7

    def test_patch_keeps_unrelated_sections(self, cache_store):
        fp = make_fingerprint(own={"instagram": "acme"})
        original = make_result()
        cache_store.write(fp, original)

        patched = cache_store.patch_section(
            fp, SOCIAL_INSTAGRAM, {Side.OWN: social_payload("instagram", "acme", 9000)},
        )

        assert patched.own_side[SOCIAL_INSTAGRAM]["followers"] == 9000
        assert patched.own_side[PERFORMANCE] == original.own_side[PERFORMANCE]
        assert patched.own_side[BACKLINKS] == original.own_side[BACKLINKS]
        assert patched.competitor_side == original.competitor_side
        social = patched.comparison["social"]["platforms"]["instagram"]
        assert social["your_followers"] == 9000
        assert social["follower_winner"] == "yours"

    def test_patch_ignores_social_identity_and_expiry(self, cache_store, cache_config):
        cache_store.write(
            make_fingerprint(own={"instagram": "acme"}),
            make_result(created_at=datetime.utcnow() - timedelta(days=10)),
        )

        patched = cache_store.patch_sections(
            make_fingerprint(own={"instagram": "someone-else"}),
            {PERFORMANCE: {Side.COMPETITOR: performance_payload(99.0)}},
        )

        assert patched is not None
        assert patched.competitor_side[PERFORMANCE]["lighthouse"]["performance"] == 99.0
        assert patched.expires_at > datetime.utcnow() + cache_config.competitor_ttl - timedelta(minutes=1)

    def test_patch_replaces_failures_for_section(self, cache_store):
        fp = make_fingerprint()
        result = make_result()
        result.failures = [
            {"provider": BACKLINKS, "side": "own", "status": "timeout", "error": "t", "retryable": True},
        ]
        result.failed_providers = [BACKLINKS]
        result.partial_failure = True
        cache_store.write(fp, result)

        patched = cache_store.patch_sections(fp, {BACKLINKS: {Side.OWN: backlinks_payload(10)}})

        assert patched.failed_providers == []
        assert patched.partial_failure is False

    def test_patch_with_nothing_cached(self, cache_store):
        assert cache_store.patch_section(make_fingerprint(), PERFORMANCE, {Side.OWN: {}}) is None

    def test_patch_rebinds_social(self, cache_store):
        cache_store.write(make_fingerprint(own={"instagram": "acme"}), make_result())
        new_fp = make_fingerprint(own={"instagram": "acme-new"})

        cache_store.patch_sections(
            new_fp,
            {SOCIAL_INSTAGRAM: {Side.OWN: social_payload("instagram", "acme-new")}},
            rebind_social=True,
        )

        assert cache_store.lookup(new_fp) is not None

    def test_database_error_is_miss(self, cache_config):
        broken = MagicMock(side_effect=RuntimeError("db down"))
        store = CompetitorCacheStore(broken, cache_config)

        assert store.lookup(make_fingerprint()) is None
        assert store.write(make_fingerprint(), make_result()) is False
        assert store.get_stats()["errors"] == 2

    def test_disabled_cache(self, session_factory):
        store = CompetitorCacheStore(session_factory, CacheConfig(enabled=False))
        assert store.write(make_fingerprint(), make_result()) is False
        assert store.lookup(make_fingerprint()) is None

    def test_purge_and_status(self, cache_store):
        fp = make_fingerprint()
        cache_store.write(fp, make_result(created_at=datetime.utcnow() - timedelta(days=8)))

        status = cache_store.status(fp.key)
        assert status["exists"] and status["expired"]

        assert cache_store.purge_expired() == 1
        assert cache_store.status(fp.key) == {"exists": False}


# =============================================================================
# SOCIAL SUB-CACHE TESTS
# =============================================================================

class TestSocialMetricsCache:
    """Own-side social metrics cache."""

    def test_fresh_hit(self, session_factory, cache_config):
        cache = SocialMetricsCache(session_factory, cache_config)
        cache.set("user-1", "instagram", "@Acme", {"followers": 10})

        hit = cache.get("user-1", "instagram", handle="acme")

        assert hit["followers"] == 10
        assert hit["cached"] is True
        assert hit["stale"] is False

    def test_other_account_is_miss(self, session_factory, cache_config):
        cache = SocialMetricsCache(session_factory, cache_config)
        cache.set("user-1", "instagram", "acme", {"followers": 10})

        assert cache.get("user-1", "instagram", handle="other") is None

    def test_expired_served_only_when_ignoring_expiration(self, session_factory, cache_config, clock):
        cache = SocialMetricsCache(session_factory, cache_config, clock=clock.utcnow)
        cache.set("user-1", "facebook", "acme", {"followers": 10})
        clock.advance(31 * 60)

        assert cache.get("user-1", "facebook") is None
        stale = cache.get("user-1", "facebook", ignore_expiration=True)
        assert stale["stale"] is True
