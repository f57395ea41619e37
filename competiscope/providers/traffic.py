"""Traffic provider: SimilarWeb estimates via RapidAPI."""

from typing import Any, Dict, Optional

from competiscope.analysis.models import TRAFFIC
from .base import ProviderAdapter, ProviderTarget
from .client import ProviderHTTPClient, ProviderInputError

RAPIDAPI_HOST = "similarweb-traffic-api-for-bulk.p.rapidapi.com"
SIMILARWEB_URL = f"https://{RAPIDAPI_HOST}/rapidapi.php"

SOURCE_KEYS = {
    "Direct": "direct",
    "Search": "search",
    "Social": "social",
    "Referrals": "referral",
    "Mail": "mail",
    "Paid Referrals": "paid",
}


def _number(value: Any, cast=float) -> Optional[Any]:
    try:
        return cast(float(value)) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def parse_similarweb(data: Dict[str, Any]) -> Dict[str, Any]:
    engagement = data.get("Engagments") or data.get("Engagements") or {}
    sources = data.get("TrafficSources") or {}
    rank = (data.get("GlobalRank") or {}).get("Rank")

    bounce = _number(engagement.get("BounceRate"))
    return {
        "monthly_visits": _number(engagement.get("Visits"), int),
        "avg_visit_duration": _number(engagement.get("TimeOnSite")),
        "pages_per_visit": _number(engagement.get("PagePerVisit")),
        "bounce_rate": round(bounce * 100, 2) if bounce is not None else None,
        "global_rank": _number(rank, int),
        "traffic_sources": {
            key: round(float(sources[name]) * 100, 2)
            for name, key in SOURCE_KEYS.items()
            if sources.get(name) is not None
        },
        "top_pages": [
            {"url": p.get("Page") or p.get("Url"), "share": p.get("Value") or p.get("Share")}
            for p in data.get("TopPages") or []
        ],
        "top_queries": [
            {"query": k.get("Name"), "volume": k.get("Volume"), "value": k.get("EstimatedValue")}
            for k in data.get("TopKeywords") or []
        ],
        "source": "similarweb",
    }


class TrafficAdapter(ProviderAdapter):
    name = TRAFFIC
    default_timeout = 30.0

    def __init__(self, client: ProviderHTTPClient, api_key: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(client, timeout)
        self.api_key = api_key

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderInputError("RapidAPI key not configured")
        data = await self.client.get_json(
            SIMILARWEB_URL,
            params={"domain": target.domain},
            headers={"x-rapidapi-key": self.api_key, "x-rapidapi-host": RAPIDAPI_HOST},
        )
        return parse_similarweb(data)
