"""Backlinks provider: SE Ranking backlinks summary."""

from typing import Any, Dict, Optional
from urllib.parse import urlparse

from competiscope.analysis.models import BACKLINKS
from .base import ProviderAdapter, ProviderTarget
from .client import ProviderError, ProviderHTTPClient, ProviderInputError

SE_RANKING_URL = "https://api.seranking.com/v1/backlinks/summary"


class BacklinksAdapter(ProviderAdapter):
    name = BACKLINKS
    default_timeout = 30.0

    def __init__(self, client: ProviderHTTPClient, api_key: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(client, timeout)
        self.api_key = api_key

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderInputError("SE Ranking API key not configured")

        data = await self.client.get_json(
            SE_RANKING_URL,
            params={"apikey": self.api_key, "target": target.domain, "mode": "host", "output": "json"},
            headers={"Accept": "application/json"},
        )
        summaries = data.get("summary") or []
        if not summaries:
            raise ProviderError(f"No backlinks data for {target.domain}", retryable=False)
        summary = summaries[0]

        return {
            "total_backlinks": summary.get("backlinks") or 0,
            "referring_domains": summary.get("refdomains") or 0,
            "dofollow": summary.get("dofollow_backlinks"),
            "nofollow": summary.get("nofollow_backlinks"),
            "domain_rank": summary.get("domain_inlink_rank"),
            "top_linking_pages": [
                {
                    "url": page.get("url"),
                    "backlinks": page.get("backlinks", 0),
                    "domain": urlparse(page.get("url") or "").netloc,
                }
                for page in (summary.get("top_pages_by_backlinks") or [])[:25]
            ],
            "source": "se_ranking",
        }
