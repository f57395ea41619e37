"""
Plan Filter

View transform from an unfiltered CompositeResult to what a tier may
see. Works on a deep copy, so the cached value is never touched and
filtering the same input twice gives the same output.

Sections a tier cannot see are replaced by a blocked marker naming the
cheapest tier that unlocks them, so callers can render an upsell.
"""

import copy
import logging
from typing import Any, Dict, List, Union

from competiscope.analysis.comparison import generate_summary
from competiscope.analysis.models import BACKLINKS, TRAFFIC, CompositeResult, is_unavailable, social_section
from competiscope.cache.fingerprint import PLATFORMS
from .features import UNLIMITED, PlanTier, get_plan_features, lowest_tier_with

logger = logging.getLogger(__name__)

ADVANCED_SOCIAL_FIELDS = ("top_posts",)
HISTORICAL_SOCIAL_FIELDS = ("follower_growth", "history")


def blocked(upgrade_required: PlanTier) -> Dict[str, Any]:
    return {"blocked": True, "upgrade_required": upgrade_required.value if upgrade_required else None}


def _cap(items: List[Any], limit: int) -> List[Any]:
    return list(items) if limit == UNLIMITED else list(items)[:limit]


def _filter_side(sections: Dict[str, Any], features: Dict[str, Any]) -> None:
    seo = features["seo"]

    if BACKLINKS in sections:
        if not seo["backlinks"]:
            sections[BACKLINKS] = blocked(lowest_tier_with(lambda f: f["seo"]["backlinks"]))
        elif not is_unavailable(sections[BACKLINKS]):
            section = sections[BACKLINKS]
            section["top_linking_pages"] = _cap(section.get("top_linking_pages", []), seo["linking_pages"])

    traffic = sections.get(TRAFFIC)
    if traffic is not None and not is_unavailable(traffic):
        traffic["top_pages"] = _cap(traffic.get("top_pages", []), seo["top_pages"])
        traffic["top_queries"] = _cap(traffic.get("top_queries", []), seo["top_queries"])
        traffic["top_pages_limit"] = seo["top_pages"]
        traffic["top_queries_limit"] = seo["top_queries"]

    for platform in PLATFORMS:
        name = social_section(platform)
        if name not in sections:
            continue
        access = features["social"][platform]
        if not access["enabled"]:
            sections[name] = blocked(
                lowest_tier_with(lambda f, p=platform: f["social"][p]["enabled"])
            )
            continue
        section = sections[name]
        if is_unavailable(section):
            continue
        if not access["advanced_metrics"]:
            for field_name in ADVANCED_SOCIAL_FIELDS:
                section.pop(field_name, None)
        if not access["historical_data"]:
            for field_name in HISTORICAL_SOCIAL_FIELDS:
                section.pop(field_name, None)


def _filter_comparison(comparison: Dict[str, Any], features: Dict[str, Any]) -> None:
    if not comparison:
        return
    if not features["seo"]["backlinks"] and "backlinks" in comparison:
        comparison["backlinks"] = blocked(lowest_tier_with(lambda f: f["seo"]["backlinks"]))

    social = comparison.get("social") or {}
    platforms = social.get("platforms")
    for platform in list(platforms or {}):
        if not features["social"][platform]["enabled"]:
            platforms[platform] = blocked(
                lowest_tier_with(lambda f, p=platform: f["social"][p]["enabled"])
            )

    comparison.pop("summary", None)
    comparison["summary"] = generate_summary(comparison)


def filter_result(
    result: Union[CompositeResult, Dict[str, Any]],
    tier: Union[str, PlanTier],
) -> Dict[str, Any]:
    """
    Tier view of a composite result, as a response dict.

    Accepts a CompositeResult or its to_dict() form. Neither is modified.
    """
    data = result.to_dict() if isinstance(result, CompositeResult) else result
    data = copy.deepcopy(data)
    tier = PlanTier.parse(tier)
    features = get_plan_features(tier)

    for side in ("your_site", "competitor_site"):
        _filter_side(data.get(side, {}).get("sections", {}), features)
    _filter_comparison(data.get("comparison", {}), features)

    data["plan"] = {"tier": tier.value, "name": features["name"]}
    logger.debug(f"Filtered result for {tier.value} plan")
    return data
