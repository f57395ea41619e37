"""
Content provider: on-page analysis of the homepage HTML.

Regex extraction rather than a full DOM parse; good enough for counts and
meta tags on a single page.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from competiscope.analysis.models import CONTENT
from competiscope.utils.domains import normalize_domain
from .base import ProviderAdapter, ProviderTarget

CMS_MARKERS = {
    "wordpress": ("wp-content", "wp-includes"),
    "shopify": ("cdn.shopify.com", "shopify.theme"),
    "wix": ("static.wixstatic.com", "wix-code"),
    "squarespace": ("static1.squarespace.com",),
    "webflow": ("webflow.js", "data-wf-site"),
    "hubspot": ("hs-scripts.com", "hubspot"),
}

FRAMEWORK_MARKERS = {
    "next.js": ("__NEXT_DATA__", "/_next/"),
    "nuxt": ("__NUXT__", "/_nuxt/"),
    "gatsby": ("___gatsby",),
    "react": ("data-reactroot", "react-dom"),
    "vue": ("data-v-", "vue.runtime"),
    "angular": ("ng-version",),
}

ANALYTICS_MARKERS = {
    "google_analytics": ("googletagmanager.com/gtag", "google-analytics.com"),
    "google_tag_manager": ("googletagmanager.com/gtm.js",),
    "meta_pixel": ("connect.facebook.net", "fbq("),
    "hotjar": ("static.hotjar.com",),
    "linkedin_insight": ("snap.licdn.com",),
    "plausible": ("plausible.io/js",),
}

_TAG = re.compile(r"<[^>]+>")
_WS = re.compile(r"\s+")


def _extract_tag(html: str, tag: str) -> Optional[str]:
    match = re.search(rf"<{tag}[^>]*>(.*?)</{tag}>", html, re.IGNORECASE | re.DOTALL)
    return _WS.sub(" ", match.group(1)).strip() if match else None


def _extract_meta(html: str, attr: str, value: str) -> Optional[str]:
    for tag in re.findall(r"<meta\s[^>]*>", html, re.IGNORECASE):
        if re.search(rf'{attr}=["\']{re.escape(value)}["\']', tag, re.IGNORECASE):
            content = re.search(r'content=["\']([^"\']*)["\']', tag, re.IGNORECASE)
            if content:
                return content.group(1).strip()
    return None


def _extract_attribute(tag: str, attr: str) -> Optional[str]:
    match = re.search(rf'{attr}=["\']([^"\']*)["\']', tag, re.IGNORECASE)
    return match.group(1) if match else None


def _count(html: str, pattern: str) -> int:
    return len(re.findall(pattern, html, re.IGNORECASE))


def _detect(html: str, markers: Dict[str, tuple]) -> List[str]:
    return [name for name, needles in markers.items() if any(n in html for n in needles)]


def analyze_html(html: str, domain: str) -> Dict[str, Any]:
    """On-page content and technology summary for one HTML document."""
    body = re.sub(r"<(script|style|noscript)[^>]*>.*?</\1>", " ", html, flags=re.IGNORECASE | re.DOTALL)
    text = _WS.sub(" ", _TAG.sub(" ", body)).strip()

    images = re.findall(r"<img\s[^>]*>", html, re.IGNORECASE)
    with_alt = [i for i in images if (_extract_attribute(i, "alt") or "").strip()]

    internal = external = 0
    own = normalize_domain(domain)
    for href in re.findall(r'<a\s[^>]*href=["\']([^"\']+)["\']', html, re.IGNORECASE):
        if href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        host = urlparse(href).netloc
        if not host or normalize_domain(host) == own:
            internal += 1
        else:
            external += 1

    canonical = None
    for link in re.findall(r"<link\s[^>]*>", html, re.IGNORECASE):
        if (_extract_attribute(link, "rel") or "").lower() == "canonical":
            canonical = _extract_attribute(link, "href")
            break

    cms = _detect(html, CMS_MARKERS)
    scripts = re.findall(r'<script[^>]+src=["\']([^"\']+)["\']', html, re.IGNORECASE)
    third_party = [s for s in scripts if urlparse(s).netloc and normalize_domain(urlparse(s).netloc) != own]

    return {
        "title": _extract_tag(html, "title"),
        "meta_description": _extract_meta(html, "name", "description"),
        "canonical": canonical,
        "headings": {
            "h1": _count(html, r"<h1[\s>]"),
            "h2": _count(html, r"<h2[\s>]"),
            "h3": _count(html, r"<h3[\s>]"),
        },
        "has_open_graph": _extract_meta(html, "property", "og:title") is not None,
        "has_twitter_card": _extract_meta(html, "name", "twitter:card") is not None,
        "structured_data_count": _count(html, r'<script[^>]+type=["\']application/ld\+json["\']'),
        "word_count": len(text.split()) if text else 0,
        "paragraph_count": _count(html, r"<p[\s>]"),
        "images_total": len(images),
        "images_alt_coverage": round(len(with_alt) / len(images) * 100, 1) if images else 0.0,
        "links_internal": internal,
        "links_external": external,
        "technology": {
            "cms": cms[0] if cms else None,
            "frameworks": _detect(html, FRAMEWORK_MARKERS),
            "analytics": _detect(html, ANALYTICS_MARKERS),
            "third_party_scripts": len(third_party),
        },
    }


class ContentAdapter(ProviderAdapter):
    name = CONTENT
    default_timeout = 30.0

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        response = await self.client.get(target.url)
        return analyze_html(response.text, target.domain)
