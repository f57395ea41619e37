"""
Tests for the fan-out orchestrator.

These tests verify:
- Which provider calls a request resolves to
- Settle-all semantics: a slow or failing provider never blocks siblings
- Total failure vs. prior fallback
"""

import asyncio
import time

import pytest

from competiscope.analysis.errors import AnalysisFailedError
from competiscope.analysis.models import (
    ADS, BACKLINKS, PERFORMANCE, SITE_SECTIONS, SOCIAL_FACEBOOK, SOCIAL_INSTAGRAM,
    TRAFFIC, OutcomeStatus, Side, is_unavailable,
)
from competiscope.analysis.orchestrator import FanOutOrchestrator

from tests.conftest import FakeAdapter, FakeRegistry, failing, missing_input


def sections_of(calls):
    return sorted((adapter.name, target.side.value) for adapter, target in calls)


# =============================================================================
# RESOLUTION
# =============================================================================

class TestResolve:
    """Provider call resolution."""

    def test_site_sections_both_sides(self, fake_registry, make_request):
        calls = FanOutOrchestrator(fake_registry).resolve(make_request())

        assert len(calls) == 2 * len(SITE_SECTIONS)
        domains = {(t.side, t.domain) for _, t in calls}
        assert domains == {(Side.OWN, "a.com"), (Side.COMPETITOR, "b.com")}

    def test_social_only_for_connected(self, fake_registry, make_request):
        request = make_request(own_handles={"instagram": "@acme", "linkedin": ""},
                               competitor_handles={"instagram": "rival"})
        calls = FanOutOrchestrator(fake_registry).resolve(request)

        social = [(a.name, t.side, t.handle) for a, t in calls if a.name.startswith("social.")]
        assert sorted(social, key=lambda c: c[1].value) == [
            (SOCIAL_INSTAGRAM, Side.COMPETITOR, "rival"),
            (SOCIAL_INSTAGRAM, Side.OWN, "acme"),
        ]

    def test_ads_for_competitor_facebook(self, fake_registry, make_request):
        request = make_request(own_handles={"facebook": "acme"}, competitor_handles={"facebook": "rival"})
        calls = FanOutOrchestrator(fake_registry).resolve(request)

        ads = [(a.name, t.side, t.handle) for a, t in calls if a.name == ADS]
        assert ads == [(ADS, Side.COMPETITOR, "rival")]

    def test_ads_skipped_without_provider(self, make_request):
        registry = FakeRegistry(with_ads=False)
        request = make_request(competitor_handles={"facebook": "rival"})
        calls = FanOutOrchestrator(registry).resolve(request)
        assert ADS not in {a.name for a, _ in calls}

    def test_sections_narrow(self, fake_registry, make_request):
        request = make_request(own_handles={"facebook": "acme"})
        calls = FanOutOrchestrator(fake_registry).resolve(request, sections=(PERFORMANCE, SOCIAL_FACEBOOK))
        assert sections_of(calls) == [
            (PERFORMANCE, "competitor"), (PERFORMANCE, "own"), (SOCIAL_FACEBOOK, "own"),
        ]


# =============================================================================
# FAN-OUT
# =============================================================================

class TestFanOut:
    """Settle-all execution."""

    @pytest.mark.asyncio
    async def test_all_succeed(self, fake_registry, make_request):
        outcomes = await FanOutOrchestrator(fake_registry).fan_out(make_request())
        assert len(outcomes) == 2 * len(SITE_SECTIONS)
        assert all(o.ok for o in outcomes)

    @pytest.mark.asyncio
    async def test_one_hang_does_not_block_others(self, make_request):
        registry = FakeRegistry({
            TRAFFIC: FakeAdapter(TRAFFIC, {Side.OWN: "hang"}, timeout=0.1),
        })

        start = time.monotonic()
        result = await FanOutOrchestrator(registry).run(make_request())
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert result.partial_failure
        assert result.failed_providers == [TRAFFIC]
        assert result.own_side[TRAFFIC]["outcome"] == "timeout"
        assert not is_unavailable(result.competitor_side[TRAFFIC])
        assert not is_unavailable(result.own_side[PERFORMANCE])

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, make_request):
        class SlowAdapter(FakeAdapter):
            async def _fetch(self, target):
                await asyncio.sleep(0.1)
                return await super()._fetch(target)

        registry = FakeRegistry({s: SlowAdapter(s, timeout=1) for s in SITE_SECTIONS})

        start = time.monotonic()
        await FanOutOrchestrator(registry).fan_out(make_request())
        assert time.monotonic() - start < 0.5

    @pytest.mark.asyncio
    async def test_input_error_not_retryable(self, make_request):
        registry = FakeRegistry({
            BACKLINKS: FakeAdapter(BACKLINKS, {Side.OWN: missing_input("No API key"),
                                               Side.COMPETITOR: failing("503")}),
        })
        outcomes = await FanOutOrchestrator(registry).fan_out(make_request(), sections=(BACKLINKS,))

        by_side = {o.side: o for o in outcomes}
        assert by_side[Side.OWN].status == OutcomeStatus.FAILURE
        assert by_side[Side.OWN].retryable is False
        assert by_side[Side.COMPETITOR].retryable is True

    @pytest.mark.asyncio
    async def test_escaped_exception_becomes_failure(self, make_request):
        class BrokenAdapter(FakeAdapter):
            async def fetch(self, target):
                raise RuntimeError("adapter bug")

        registry = FakeRegistry({PERFORMANCE: BrokenAdapter(PERFORMANCE)})
        outcomes = await FanOutOrchestrator(registry).fan_out(make_request(), sections=(PERFORMANCE,))

        assert [o.status for o in outcomes] == [OutcomeStatus.FAILURE] * 2
        assert "adapter bug" in outcomes[0].error

    @pytest.mark.asyncio
    async def test_all_fail_raises(self, make_request):
        registry = FakeRegistry({
            s: FakeAdapter(s, {Side.OWN: failing(), Side.COMPETITOR: failing()}) for s in SITE_SECTIONS
        })

        with pytest.raises(AnalysisFailedError):
            await FanOutOrchestrator(registry).run(make_request())

    @pytest.mark.asyncio
    async def test_all_fail_with_prior(self, fake_registry, make_request):
        request = make_request()
        prior = await FanOutOrchestrator(fake_registry).run(request)

        registry = FakeRegistry({
            s: FakeAdapter(s, {Side.OWN: failing(), Side.COMPETITOR: failing()}) for s in SITE_SECTIONS
        })
        result = await FanOutOrchestrator(registry).run(request, prior=prior)

        assert result.own_side[PERFORMANCE] == prior.own_side[PERFORMANCE]
        assert result.partial_failure
