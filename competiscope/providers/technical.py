"""
Technical provider: direct probes of the site.

Homepage status and latency, HTTPS, CDN fingerprint from response headers,
robots.txt, sitemap.xml size and mixed content on the homepage.
"""

import asyncio
import re
import time
from typing import Any, Dict, Optional

import httpx

from competiscope.analysis.models import TECHNICAL
from .base import ProviderAdapter, ProviderTarget

CDN_HEADERS = (
    ("cf-ray", "cloudflare"),
    ("x-amz-cf-id", "cloudfront"),
    ("x-fastly-request-id", "fastly"),
    ("x-akamai-transformed", "akamai"),
    ("x-vercel-id", "vercel"),
    ("x-nf-request-id", "netlify"),
)

_LOC = re.compile(r"<loc>\s*([^<\s]+)\s*</loc>", re.IGNORECASE)
_INSECURE_ASSET = re.compile(r'(?:src|href)=["\']http://[^"\']+\.(?:js|css|png|jpe?g|gif|svg|webp)', re.IGNORECASE)


def detect_cdn(headers: httpx.Headers) -> Optional[str]:
    for header, cdn in CDN_HEADERS:
        if header in headers:
            return cdn
    server = headers.get("server", "").lower()
    for cdn in ("cloudflare", "akamai", "fastly", "vercel", "netlify"):
        if cdn in server:
            return cdn
    return None


class TechnicalAdapter(ProviderAdapter):
    name = TECHNICAL
    default_timeout = 30.0

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        start = time.monotonic()
        home = await self.client.get(target.url)
        response_time_ms = (time.monotonic() - start) * 1000

        robots, sitemap = await asyncio.gather(
            self.client.get(f"{target.url}/robots.txt", allow_status=(404, 403, 410)),
            self.client.get(f"{target.url}/sitemap.xml", allow_status=(404, 403, 410)),
        )

        has_sitemap = sitemap.status_code == 200 and "<loc>" in sitemap.text.lower()
        is_https = home.url.scheme == "https"

        return {
            "is_https": is_https,
            "status_code": home.status_code,
            "response_time_ms": round(response_time_ms),
            "has_robots_txt": robots.status_code == 200,
            "has_sitemap": has_sitemap,
            "sitemap_urls": len(_LOC.findall(sitemap.text)) if has_sitemap else 0,
            "cdn": detect_cdn(home.headers),
            "mixed_content": is_https and bool(_INSECURE_ASSET.search(home.text)),
        }
