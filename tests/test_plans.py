"""
Tests for plan tiers, the plan filter and plan lookup.
"""

import copy
from unittest.mock import MagicMock

import pytest

from competiscope.analysis.compositor import compose
from competiscope.analysis.models import (
    BACKLINKS, SOCIAL_FACEBOOK, SOCIAL_LINKEDIN, TRAFFIC, OutcomeStatus,
    ProviderOutcome, Side,
)
from competiscope.plans import (
    PLAN_FEATURES, PlanLookup, PlanTier, filter_result, get_plan_features,
    lowest_tier_with, next_tier,
)

from tests.conftest import (
    backlinks_payload, performance_payload, social_payload, traffic_payload,
)


@pytest.fixture
def full_result(make_request):
    request = make_request(
        own_handles={"facebook": "acme", "linkedin": "acme"},
        competitor_handles={"facebook": "rival", "linkedin": "rival"},
    )
    outcomes = []
    for side, handle in ((Side.OWN, "acme"), (Side.COMPETITOR, "rival")):
        outcomes += [
            ProviderOutcome("performance", side, OutcomeStatus.SUCCESS, payload=performance_payload()),
            ProviderOutcome(BACKLINKS, side, OutcomeStatus.SUCCESS, payload=backlinks_payload()),
            ProviderOutcome(TRAFFIC, side, OutcomeStatus.SUCCESS, payload=traffic_payload()),
            ProviderOutcome(SOCIAL_FACEBOOK, side, OutcomeStatus.SUCCESS,
                            payload=social_payload("facebook", handle)),
            ProviderOutcome(SOCIAL_LINKEDIN, side, OutcomeStatus.SUCCESS,
                            payload=social_payload("linkedin", handle)),
        ]
    return compose(outcomes, request)


# =============================================================================
# FEATURE TABLE
# =============================================================================

class TestPlanFeatures:
    """Tier feature table."""

    def test_parse_defaults_to_starter(self):
        assert PlanTier.parse("PRO") == PlanTier.PRO
        assert PlanTier.parse("enterprise") == PlanTier.STARTER
        assert PlanTier.parse(None) == PlanTier.STARTER

    def test_competitor_limits(self):
        assert [PLAN_FEATURES[t]["competitors"]["max"] for t in PlanTier] == [1, 3, 10]

    def test_lowest_tier_with(self):
        assert lowest_tier_with(lambda f: f["seo"]["backlinks"]) == PlanTier.GROWTH
        assert lowest_tier_with(lambda f: f["competitors"]["max"] > 100) is None

    def test_next_tier(self):
        assert next_tier("starter") == PlanTier.GROWTH
        assert next_tier(PlanTier.PRO) is None


# =============================================================================
# FILTER
# =============================================================================

class TestPlanFilter:
    """Tier views of a composite result."""

    def test_does_not_mutate_input(self, full_result):
        before = copy.deepcopy(full_result.to_dict())
        filter_result(full_result, PlanTier.STARTER)
        assert full_result.to_dict() == before

    def test_idempotent(self, full_result):
        for tier in PlanTier:
            once = filter_result(full_result, tier)
            assert filter_result(once, tier) == once

    def test_starter_blocks_backlinks_and_linkedin(self, full_result):
        data = filter_result(full_result, "starter")
        own = data["your_site"]["sections"]

        assert own[BACKLINKS] == {"blocked": True, "upgrade_required": "growth"}
        assert own[SOCIAL_LINKEDIN] == {"blocked": True, "upgrade_required": "growth"}
        assert own[SOCIAL_FACEBOOK]["followers"] == 1000
        assert data["comparison"]["backlinks"]["blocked"] is True
        assert data["comparison"]["social"]["platforms"]["linkedin"] == {
            "blocked": True, "upgrade_required": "growth",
        }
        assert "facebook" in data["comparison"]["social"]["platforms"]
        assert "backlinks" not in data["comparison"]["summary"]["dimensions_compared"]
        assert data["plan"] == {"tier": "starter", "name": "Starter"}

    def test_starter_caps_traffic_lists(self, full_result):
        traffic = filter_result(full_result, "starter")["competitor_site"]["sections"][TRAFFIC]
        assert len(traffic["top_pages"]) == 2
        assert len(traffic["top_queries"]) == 2
        assert traffic["top_pages_limit"] == 2

    def test_growth_caps_linking_pages(self, full_result):
        data = filter_result(full_result, "growth")
        backlinks = data["your_site"]["sections"][BACKLINKS]
        assert len(backlinks["top_linking_pages"]) == 8
        assert len(data["your_site"]["sections"][TRAFFIC]["top_pages"]) == 10
        assert data["your_site"]["sections"][SOCIAL_LINKEDIN]["followers"] == 1000

    def test_pro_is_unlimited(self, full_result):
        data = filter_result(full_result, PlanTier.PRO)
        assert len(data["your_site"]["sections"][TRAFFIC]["top_pages"]) == 12
        assert data["your_site"]["sections"][TRAFFIC]["top_pages_limit"] == -1

    def test_strips_advanced_and_historical_fields(self, full_result, monkeypatch):
        features = copy.deepcopy(PLAN_FEATURES)
        features[PlanTier.STARTER]["social"]["facebook"]["advanced_metrics"] = False
        features[PlanTier.STARTER]["social"]["facebook"]["historical_data"] = False
        monkeypatch.setattr("competiscope.plans.filter.get_plan_features", lambda t: features[PlanTier.parse(t)])

        facebook = filter_result(full_result, "starter")["your_site"]["sections"][SOCIAL_FACEBOOK]

        assert "top_posts" not in facebook
        assert "follower_growth" not in facebook
        assert "history" not in facebook
        assert facebook["followers"] == 1000

    def test_blocked_platform_not_counted_in_summary(self, full_result, monkeypatch):
        def total(summary):
            return summary["your_wins"] + summary["competitor_wins"] + summary["ties"]

        open_summary = filter_result(full_result, "pro")["comparison"]["summary"]

        features = copy.deepcopy(PLAN_FEATURES)
        features[PlanTier.PRO]["social"]["linkedin"]["enabled"] = False
        monkeypatch.setattr("competiscope.plans.filter.get_plan_features", lambda t: features[PlanTier.parse(t)])
        data = filter_result(full_result, "pro")

        assert data["comparison"]["social"]["platforms"]["linkedin"]["blocked"] is True
        assert total(data["comparison"]["summary"]) == total(open_summary) - 1

    def test_unavailable_sections_pass_through(self, make_request):
        result = compose(
            [ProviderOutcome(TRAFFIC, Side.OWN, OutcomeStatus.FAILURE, error="boom"),
             ProviderOutcome(TRAFFIC, Side.COMPETITOR, OutcomeStatus.SUCCESS, payload=traffic_payload())],
            make_request(),
        )
        data = filter_result(result, "growth")
        assert data["your_site"]["sections"][TRAFFIC]["status"] == "unavailable"


# =============================================================================
# LOOKUP
# =============================================================================

class TestPlanLookup:
    """Tier resolution from the database."""

    def test_unknown_identity_is_starter(self, session_factory):
        assert PlanLookup(session_factory).get_tier("nobody") == PlanTier.STARTER

    def test_set_and_get(self, session_factory):
        plans = PlanLookup(session_factory)
        plans.set_tier("user-1", PlanTier.PRO)
        assert plans.get_tier("user-1") == PlanTier.PRO

    def test_cached_until_expiry(self, session_factory, clock):
        plans = PlanLookup(session_factory, cache_seconds=60, clock=clock)
        writer = PlanLookup(session_factory)
        assert plans.get_tier("user-1") == PlanTier.STARTER

        writer.set_tier("user-1", PlanTier.GROWTH)
        assert plans.get_tier("user-1") == PlanTier.STARTER

        clock.advance(61)
        assert plans.get_tier("user-1") == PlanTier.GROWTH

    def test_database_error_is_starter(self):
        plans = PlanLookup(MagicMock(side_effect=RuntimeError("db down")))
        assert plans.get_tier("user-1") == PlanTier.STARTER

    def test_features_lookup(self):
        assert get_plan_features("growth")["seo"]["top_pages"] == 10
