"""
Performance provider: Google PageSpeed Insights v5.

Runs mobile and desktop strategies concurrently. Lighthouse category
scores come from the mobile run, scaled to 0-100.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from competiscope.analysis.models import PERFORMANCE
from .base import ProviderAdapter, ProviderTarget
from .client import ProviderError, ProviderHTTPClient

logger = logging.getLogger(__name__)

PAGESPEED_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

CATEGORIES = ("performance", "accessibility", "best-practices", "seo")

AUDITS = {
    "first-contentful-paint": "first_contentful_paint_ms",
    "largest-contentful-paint": "largest_contentful_paint_ms",
    "total-blocking-time": "total_blocking_time_ms",
    "cumulative-layout-shift": "cumulative_layout_shift",
    "speed-index": "speed_index_ms",
}


def _score(category: Optional[Dict[str, Any]]) -> Optional[float]:
    if not category or category.get("score") is None:
        return None
    return round(category["score"] * 100, 1)


def parse_lighthouse(data: Dict[str, Any]) -> Dict[str, Any]:
    """Pull category scores and core audit values out of a runPagespeed response."""
    lighthouse = data.get("lighthouseResult") or {}
    categories = lighthouse.get("categories") or {}
    audits = lighthouse.get("audits") or {}

    scores = {c.replace("-", "_"): _score(categories.get(c)) for c in CATEGORIES}
    metrics = {"performance_score": scores["performance"]}
    for audit_id, field_name in AUDITS.items():
        value = (audits.get(audit_id) or {}).get("numericValue")
        metrics[field_name] = round(value, 3) if value is not None else None

    return {"scores": scores, "metrics": metrics}


class PerformanceAdapter(ProviderAdapter):
    name = PERFORMANCE
    default_timeout = 30.0

    def __init__(self, client: ProviderHTTPClient, api_key: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(client, timeout)
        self.api_key = api_key

    async def _run(self, url: str, strategy: str) -> Dict[str, Any]:
        params = {"url": url, "strategy": strategy, "category": list(CATEGORIES)}
        if self.api_key:
            params["key"] = self.api_key
        data = await self.client.get_json(PAGESPEED_URL, params=params)
        return parse_lighthouse(data)

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        mobile, desktop = await asyncio.gather(
            self._run(target.url, "mobile"),
            self._run(target.url, "desktop"),
            return_exceptions=True,
        )
        if isinstance(mobile, Exception) and isinstance(desktop, Exception):
            raise mobile if isinstance(mobile, ProviderError) else ProviderError(str(mobile))

        pagespeed = {}
        for strategy, run in (("mobile", mobile), ("desktop", desktop)):
            if isinstance(run, Exception):
                logger.warning(f"PageSpeed {strategy} run failed for {target.domain}: {run}")
                continue
            pagespeed[strategy] = run["metrics"]

        primary = mobile if not isinstance(mobile, Exception) else desktop
        return {"lighthouse": primary["scores"], "pagespeed": pagespeed}
