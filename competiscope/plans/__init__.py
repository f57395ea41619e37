"""Subscription tiers and the view filter they drive."""

from .features import (
    PlanTier, PLAN_FEATURES, UNLIMITED, get_plan_features, lowest_tier_with, next_tier,
)
from .filter import filter_result, blocked
from .lookup import PlanLookup

__all__ = [
    "PlanTier",
    "PLAN_FEATURES",
    "UNLIMITED",
    "get_plan_features",
    "lowest_tier_with",
    "next_tier",
    "filter_result",
    "blocked",
    "PlanLookup",
]
