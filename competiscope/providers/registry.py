"""
Provider Registry

Builds every adapter from Settings around one shared HTTP client, and
hands the orchestrator the adapter for a (section, side) pair.
"""

import logging
from typing import Dict, Optional

from competiscope.analysis.models import ADS, Side, section_platform
from competiscope.cache.social_cache import SocialMetricsCache
from competiscope.utils.config import Settings, get_settings
from .ads import AdsAdapter
from .backlinks import BacklinksAdapter
from .base import ProviderAdapter
from .client import ProviderHTTPClient
from .content import ContentAdapter
from .performance import PerformanceAdapter
from .social import (
    ApifySocialAdapter, FacebookAdapter, InstagramAdapter, LinkedInAdapter, OwnSocialAdapter,
)
from .technical import TechnicalAdapter
from .traffic import TrafficAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Adapters keyed by section name."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[ProviderHTTPClient] = None,
        social_cache: Optional[SocialMetricsCache] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or ProviderHTTPClient()
        timeouts = self.settings.provider_timeouts()
        s = self.settings

        self.site: Dict[str, ProviderAdapter] = {}
        for adapter in (
            PerformanceAdapter(self.client, s.PAGESPEED_API_KEY, timeouts["performance"]),
            TechnicalAdapter(self.client, timeouts["technical"]),
            ContentAdapter(self.client, timeouts["content"]),
            BacklinksAdapter(self.client, s.SE_RANKING_API_KEY, timeouts["backlinks"]),
            TrafficAdapter(self.client, s.RAPIDAPI_KEY, timeouts["traffic"]),
        ):
            self.site[adapter.name] = adapter

        self.social: Dict[str, ApifySocialAdapter] = {}
        for cls in (FacebookAdapter, InstagramAdapter, LinkedInAdapter):
            adapter = cls(self.client, s.APIFY_API_TOKEN)
            adapter.timeout = timeouts.get(adapter.name, adapter.timeout)
            self.social[adapter.name] = adapter

        self.own_social: Dict[str, ProviderAdapter] = {}
        if social_cache is not None:
            self.own_social = {
                name: OwnSocialAdapter(adapter, social_cache)
                for name, adapter in self.social.items()
            }

        self.ads: Optional[AdsAdapter] = None
        if s.SEARCHAPI_KEY:
            self.ads = AdsAdapter(self.client, s.SEARCHAPI_KEY, timeouts["ads"])

    def adapter_for(self, section: str, side: Side) -> Optional[ProviderAdapter]:
        """Adapter serving a section for a side, or None if none is configured."""
        if section == ADS:
            return self.ads
        if section_platform(section):
            if side == Side.OWN and section in self.own_social:
                return self.own_social[section]
            return self.social.get(section)
        return self.site.get(section)

    async def close(self):
        await self.client.close()
