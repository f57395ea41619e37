"""
Plan Features

What each subscription tier may see. -1 means unlimited.

SOCIAL:
- STARTER: Facebook + Instagram with full metrics, LinkedIn locked
- GROWTH / PRO: all platforms, full metrics
"""

import enum
from typing import Any, Dict, Optional, Union

UNLIMITED = -1


class PlanTier(str, enum.Enum):
    STARTER = "starter"
    GROWTH = "growth"
    PRO = "pro"

    @classmethod
    def parse(cls, value: Optional[Union[str, "PlanTier"]]) -> "PlanTier":
        """Tier for a stored value. Unknown or missing values are starter."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.STARTER


TIER_ORDER = (PlanTier.STARTER, PlanTier.GROWTH, PlanTier.PRO)


def _social(enabled: bool) -> Dict[str, bool]:
    return {
        "enabled": enabled,
        "basic_metrics": enabled,
        "advanced_metrics": enabled,
        "historical_data": enabled,
    }


PLAN_FEATURES: Dict[PlanTier, Dict[str, Any]] = {
    PlanTier.STARTER: {
        "name": "Starter",
        "competitors": {"max": 1},
        "seo": {
            "top_pages": 2,
            "top_queries": 2,
            "lighthouse": True,
            "backlinks": False,
            "linking_pages": 0,
        },
        "social": {
            "facebook": _social(True),
            "instagram": _social(True),
            "linkedin": _social(False),
        },
        "ads": True,
    },
    PlanTier.GROWTH: {
        "name": "Growth",
        "competitors": {"max": 3},
        "seo": {
            "top_pages": 10,
            "top_queries": 10,
            "lighthouse": True,
            "backlinks": True,
            "linking_pages": 10,
        },
        "social": {
            "facebook": _social(True),
            "instagram": _social(True),
            "linkedin": _social(True),
        },
        "ads": True,
    },
    PlanTier.PRO: {
        "name": "Pro",
        "competitors": {"max": 10},
        "seo": {
            "top_pages": UNLIMITED,
            "top_queries": UNLIMITED,
            "lighthouse": True,
            "backlinks": True,
            "linking_pages": UNLIMITED,
        },
        "social": {
            "facebook": _social(True),
            "instagram": _social(True),
            "linkedin": _social(True),
        },
        "ads": True,
    },
}


def get_plan_features(tier: Union[str, PlanTier]) -> Dict[str, Any]:
    return PLAN_FEATURES[PlanTier.parse(tier)]


def lowest_tier_with(check) -> Optional[PlanTier]:
    """Cheapest tier whose feature dict satisfies check(features)."""
    for tier in TIER_ORDER:
        if check(PLAN_FEATURES[tier]):
            return tier
    return None


def next_tier(tier: Union[str, PlanTier]) -> Optional[PlanTier]:
    index = TIER_ORDER.index(PlanTier.parse(tier))
    return TIER_ORDER[index + 1] if index + 1 < len(TIER_ORDER) else None
