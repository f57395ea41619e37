"""
Comparison Derivation

Pure functions from the two sides of a report to its `comparison` block.
Re-run whenever either side changes, including after a section refresh.

A dimension whose inputs are unavailable on either side is reported as
{"available": False} rather than compared against zeros.
"""

from typing import Any, Dict, List, Optional

from .models import (
    BACKLINKS, CONTENT, PERFORMANCE, SOCIAL_SECTIONS, TECHNICAL, TRAFFIC,
    is_unavailable, section_platform,
)

NOT_AVAILABLE = {"available": False}


def _winner(yours: float, competitor: float) -> str:
    if yours > competitor:
        return "yours"
    if competitor > yours:
        return "competitor"
    return "tie"


def _pair(own: Dict[str, Any], competitor: Dict[str, Any], section: str):
    a, b = own.get(section), competitor.get(section)
    if is_unavailable(a) or is_unavailable(b):
        return None
    return a, b


def _mean(values: List[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else None


# =============================================================================
# DIMENSIONS
# =============================================================================

def _performance_score(section: Dict[str, Any]) -> Optional[float]:
    pagespeed = section.get("pagespeed") or {}
    return _mean([
        (section.get("lighthouse") or {}).get("performance"),
        (pagespeed.get("desktop") or {}).get("performance_score"),
        (pagespeed.get("mobile") or {}).get("performance_score"),
    ])


def compare_performance(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    """Average of lighthouse performance and both pagespeed strategies."""
    pair = _pair(own, competitor, PERFORMANCE)
    if not pair:
        return dict(NOT_AVAILABLE)
    yours, theirs = _performance_score(pair[0]), _performance_score(pair[1])
    if yours is None or theirs is None:
        return dict(NOT_AVAILABLE)
    return {
        "available": True,
        "your_score": round(yours, 1),
        "competitor_score": round(theirs, 1),
        "winner": _winner(yours, theirs),
        "gap": round(abs(yours - theirs), 1),
    }


def on_page_seo_score(content: Dict[str, Any]) -> int:
    """
    On-page SEO score out of 100.

    Meta tags 40, headings 20, social tags 20, structured data 20.
    """
    score = 0
    title = content.get("title") or ""
    description = content.get("meta_description") or ""
    headings = content.get("headings") or {}

    if title:
        score += 10
    if description:
        score += 10
    if content.get("canonical"):
        score += 10
    if 30 <= len(title) <= 60:
        score += 5
    if 120 <= len(description) <= 160:
        score += 5

    if headings.get("h1", 0) == 1:
        score += 10
    if headings.get("h2", 0) > 0:
        score += 5
    if headings.get("h3", 0) > 0:
        score += 5

    if content.get("has_open_graph"):
        score += 10
    if content.get("has_twitter_card"):
        score += 10

    if content.get("structured_data_count", 0) > 0:
        score += 20

    return score


def compare_seo(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    pair = _pair(own, competitor, CONTENT)
    if not pair:
        return dict(NOT_AVAILABLE)
    yours, theirs = on_page_seo_score(pair[0]), on_page_seo_score(pair[1])
    return {
        "available": True,
        "scores": {"your": yours, "competitor": theirs},
        "winner": _winner(yours, theirs),
    }


def compare_content(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    pair = _pair(own, competitor, CONTENT)
    if not pair:
        return dict(NOT_AVAILABLE)

    def summary(c: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "word_count": c.get("word_count", 0),
            "paragraph_count": c.get("paragraph_count", 0),
            "image_count": c.get("images_total", 0),
            "image_alt_coverage": c.get("images_alt_coverage", 0.0),
            "internal_links": c.get("links_internal", 0),
            "external_links": c.get("links_external", 0),
        }

    yours, theirs = summary(pair[0]), summary(pair[1])
    return {
        "available": True,
        "your": yours,
        "competitor": theirs,
        "winner": _winner(yours["word_count"], theirs["word_count"]),
    }


def compare_technology(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    pair = _pair(own, competitor, CONTENT)
    if not pair:
        return dict(NOT_AVAILABLE)

    def stack(c: Dict[str, Any]) -> Dict[str, Any]:
        tech = c.get("technology") or {}
        return {
            "cms": tech.get("cms") or "Unknown",
            "frameworks": tech.get("frameworks", []),
            "analytics": tech.get("analytics", []),
            "third_party_scripts": tech.get("third_party_scripts", 0),
        }

    return {"available": True, "your": stack(pair[0]), "competitor": stack(pair[1])}


def compare_security(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    pair = _pair(own, competitor, TECHNICAL)
    if not pair:
        return dict(NOT_AVAILABLE)

    def checks(t: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "is_https": t.get("is_https", False),
            "has_cdn": bool(t.get("cdn")),
            "cdn_provider": t.get("cdn"),
            "has_mixed_content": t.get("mixed_content", False),
            "has_robots_txt": t.get("has_robots_txt", False),
            "has_sitemap": t.get("has_sitemap", False),
            "sitemap_urls": t.get("sitemap_urls", 0),
        }

    yours, theirs = checks(pair[0]), checks(pair[1])
    passed = ("is_https", "has_cdn", "has_robots_txt", "has_sitemap")
    your_passed = sum(1 for k in passed if yours[k]) - int(yours["has_mixed_content"])
    their_passed = sum(1 for k in passed if theirs[k]) - int(theirs["has_mixed_content"])
    return {
        "available": True,
        "your": yours,
        "competitor": theirs,
        "winner": _winner(your_passed, their_passed),
    }


def compare_traffic(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    pair = _pair(own, competitor, TRAFFIC)
    if not pair:
        return dict(NOT_AVAILABLE)
    yours, theirs = pair
    your_visits = yours.get("monthly_visits") or 0
    their_visits = theirs.get("monthly_visits") or 0
    your_bounce = yours.get("bounce_rate") if yours.get("bounce_rate") is not None else 100.0
    their_bounce = theirs.get("bounce_rate") if theirs.get("bounce_rate") is not None else 100.0
    your_pages = yours.get("pages_per_visit") or 0.0
    their_pages = theirs.get("pages_per_visit") or 0.0

    traffic_winner = "yours" if your_visits > their_visits else "competitor"

    # Lower bounce and more pages per visit each score a point
    your_points = int(your_bounce < their_bounce) + int(your_pages > their_pages)
    their_points = 2 - your_points
    engagement_winner = "yours" if your_points > their_points else "competitor"

    recommendations = []
    if traffic_winner == "competitor" and your_visits > 0:
        more = (their_visits / your_visits - 1) * 100
        recommendations.append(
            f"Competitor has {more:.0f}% more traffic. Focus on SEO and content marketing."
        )
    if engagement_winner == "competitor":
        recommendations.append(
            "Improve user engagement by enhancing content quality and site navigation."
        )
    if their_bounce < your_bounce:
        recommendations.append(
            f"Reduce bounce rate from {your_bounce:.1f}% to match competitor's {their_bounce:.1f}%."
        )

    return {
        "available": True,
        "your_monthly_visits": your_visits,
        "competitor_monthly_visits": their_visits,
        "winner": traffic_winner,
        "gap": abs(your_visits - their_visits),
        "engagement_winner": engagement_winner,
        "recommendations": recommendations,
    }


def compare_backlinks(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    pair = _pair(own, competitor, BACKLINKS)
    if not pair:
        return dict(NOT_AVAILABLE)
    yours = pair[0].get("total_backlinks", 0)
    theirs = pair[1].get("total_backlinks", 0)
    return {
        "available": True,
        "your": {
            "total_backlinks": yours,
            "referring_domains": pair[0].get("referring_domains", 0),
        },
        "competitor": {
            "total_backlinks": theirs,
            "referring_domains": pair[1].get("referring_domains", 0),
        },
        "winner": _winner(yours, theirs),
        "difference": abs(yours - theirs),
    }


def compare_social(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    """Follower and engagement deltas for every platform present on both sides."""
    platforms = {}
    for section in SOCIAL_SECTIONS:
        pair = _pair(own, competitor, section)
        if not pair:
            continue
        yours, theirs = pair
        your_followers = yours.get("followers", 0)
        their_followers = theirs.get("followers", 0)
        platforms[section_platform(section)] = {
            "your_followers": your_followers,
            "competitor_followers": their_followers,
            "follower_gap": your_followers - their_followers,
            "follower_ratio": round(your_followers / their_followers, 2) if their_followers else None,
            "follower_winner": _winner(your_followers, their_followers),
            "engagement_winner": _winner(
                yours.get("engagement_rate", 0.0), theirs.get("engagement_rate", 0.0)
            ),
        }
    if not platforms:
        return dict(NOT_AVAILABLE)
    return {"available": True, "platforms": platforms}


def generate_summary(comparison: Dict[str, Any]) -> Dict[str, Any]:
    """Count dimension wins per side and name an overall winner."""
    wins = {"yours": 0, "competitor": 0, "tie": 0}
    for name, dimension in comparison.items():
        if not dimension.get("available"):
            continue
        if name == "social":
            for platform in dimension["platforms"].values():
                if platform.get("follower_winner") in wins:
                    wins[platform["follower_winner"]] += 1
        elif dimension.get("winner") in wins:
            wins[dimension["winner"]] += 1

    compared = [n for n, d in comparison.items() if d.get("available")]
    return {
        "your_wins": wins["yours"],
        "competitor_wins": wins["competitor"],
        "ties": wins["tie"],
        "overall_winner": _winner(wins["yours"], wins["competitor"]),
        "dimensions_compared": compared,
    }


def generate_comparison(own: Dict[str, Any], competitor: Dict[str, Any]) -> Dict[str, Any]:
    """Full comparison block for a pair of sides."""
    comparison = {
        "performance": compare_performance(own, competitor),
        "seo": compare_seo(own, competitor),
        "content": compare_content(own, competitor),
        "technology": compare_technology(own, competitor),
        "security": compare_security(own, competitor),
        "traffic": compare_traffic(own, competitor),
        "backlinks": compare_backlinks(own, competitor),
        "social": compare_social(own, competitor),
    }
    comparison["summary"] = generate_summary(comparison)
    return comparison
