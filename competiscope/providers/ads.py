"""Ads provider: Meta Ad Library through SearchAPI.io, keyed by Facebook page."""

from typing import Any, Dict, Optional

from competiscope.analysis.models import ADS
from .base import ProviderAdapter, ProviderTarget
from .client import ProviderHTTPClient, ProviderInputError

SEARCHAPI_URL = "https://www.searchapi.io/api/v1/search"

MAX_AD_SAMPLES = 10


class AdsAdapter(ProviderAdapter):
    name = ADS
    default_timeout = 30.0

    def __init__(self, client: ProviderHTTPClient, api_key: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(client, timeout)
        self.api_key = api_key

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderInputError("SearchAPI key not configured")
        if not target.handle:
            raise ProviderInputError("No Facebook page to look up ads for")

        data = await self.client.get_json(
            SEARCHAPI_URL,
            params={"engine": "meta_ad_library", "q": target.handle, "api_key": self.api_key},
        )
        ads = data.get("ads") or []
        platforms = sorted({p.lower() for ad in ads for p in ad.get("publisher_platform") or []})
        page_name = next(
            ((ad.get("snapshot") or {}).get("page_name") for ad in ads if ad.get("snapshot")),
            None,
        )

        return {
            "page_name": page_name,
            "active_ads": (data.get("search_information") or {}).get("total_results", len(ads)),
            "platforms": platforms,
            "ads": [
                {
                    "id": ad.get("ad_archive_id"),
                    "text": ((ad.get("snapshot") or {}).get("body") or {}).get("text"),
                    "cta": (ad.get("snapshot") or {}).get("cta_text"),
                    "start_date": ad.get("start_date"),
                    "is_active": ad.get("is_active"),
                }
                for ad in ads[:MAX_AD_SAMPLES]
            ],
        }
