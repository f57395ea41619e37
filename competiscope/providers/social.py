"""
Social providers

Competitor accounts are scraped through Apify actors (run-sync, dataset
items returned inline). The own side reads the short-lived social metrics
cache first, scrapes on a miss, and falls back to a stale cached entry when
the scrape fails.

Engagement rate is average interactions per post over followers, in percent.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from competiscope.analysis.models import social_section
from competiscope.cache.social_cache import SocialMetricsCache
from .base import ProviderAdapter, ProviderTarget
from .client import ProviderError, ProviderHTTPClient, ProviderInputError

logger = logging.getLogger(__name__)

APIFY_RUN_URL = "https://api.apify.com/v2/acts/{actor}/run-sync-get-dataset-items"

POSTS_LIMIT = 20
TOP_POSTS = 5


def summarize_posts(
    platform: str,
    handle: str,
    name: Optional[str],
    followers: int,
    posts: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Aggregate normalized posts ({url, likes, comments, shares, posted_at})
    into a social section payload.
    """
    posts = posts[:POSTS_LIMIT]
    count = len(posts)
    likes = sum(p["likes"] for p in posts)
    comments = sum(p["comments"] for p in posts)
    shares = sum(p["shares"] for p in posts)

    avg_interactions = (likes + comments + shares) / count if count else 0.0
    engagement_rate = avg_interactions / followers * 100 if followers else 0.0

    ranked = sorted(posts, key=lambda p: p["likes"] + p["comments"] + p["shares"], reverse=True)
    return {
        "platform": platform,
        "handle": handle,
        "name": name,
        "followers": followers,
        "avg_likes": round(likes / count, 2) if count else 0.0,
        "avg_comments": round(comments / count, 2) if count else 0.0,
        "avg_shares": round(shares / count, 2) if count else 0.0,
        "avg_interactions": round(avg_interactions, 2),
        "engagement_rate": round(engagement_rate, 3),
        "posts_analyzed": count,
        "top_posts": ranked[:TOP_POSTS],
        "source": "apify",
    }


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class ApifySocialAdapter(ProviderAdapter):
    """Base for scraper-backed social adapters. One per platform."""

    platform: str = ""

    def __init__(self, client: ProviderHTTPClient, api_token: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(client, timeout)
        self.api_token = api_token
        self.name = social_section(self.platform)

    async def run_actor(self, actor_id: str, actor_input: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = await self.client.post_json(
            APIFY_RUN_URL.format(actor=actor_id.replace("/", "~")),
            actor_input,
            params={"token": self.api_token, "timeout": int(self.timeout)},
        )
        if not isinstance(items, list):
            raise ProviderError(f"Unexpected response from {actor_id}", response=items)
        return items

    async def scrape(self, handle: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        if not target.handle:
            raise ProviderInputError(f"No {self.platform} account connected")
        if not self.api_token:
            raise ProviderInputError("Apify API token not configured")
        return await self.scrape(target.handle)


class InstagramAdapter(ApifySocialAdapter):
    platform = "instagram"
    default_timeout = 60.0

    async def scrape(self, handle: str) -> Dict[str, Any]:
        items = await self.run_actor("apify/instagram-scraper", {
            "directUrls": [f"https://www.instagram.com/{handle}"],
            "resultsType": "details",
            "resultsLimit": POSTS_LIMIT,
        })
        if not items:
            raise ProviderError(f"No Instagram profile found for @{handle}", retryable=False)

        profile = items[0]
        posts = [
            {
                "url": p.get("url"),
                "likes": max(_int(p.get("likesCount")), 0),
                "comments": _int(p.get("commentsCount")),
                "shares": 0,
                "posted_at": p.get("timestamp"),
            }
            for p in profile.get("latestPosts") or []
        ]
        return summarize_posts(
            self.platform, handle, profile.get("fullName"),
            _int(profile.get("followersCount")), posts,
        )


class FacebookAdapter(ApifySocialAdapter):
    platform = "facebook"
    default_timeout = 45.0

    async def scrape(self, handle: str) -> Dict[str, Any]:
        url = handle if handle.startswith("http") else f"https://www.facebook.com/{handle}"
        pages, posts = await asyncio.gather(
            self.run_actor("apify/facebook-pages-scraper", {"startUrls": [{"url": url}]}),
            self.run_actor("apify/facebook-posts-scraper", {
                "startUrls": [{"url": url}],
                "resultsLimit": POSTS_LIMIT,
                "captionText": False,
            }),
        )
        if not pages:
            raise ProviderError(f"No Facebook page found for {handle}", retryable=False)

        page = pages[0]
        followers = _int(page.get("followers") or page.get("likes"))
        normalized = [
            {
                "url": p.get("url"),
                "likes": _int(p.get("likes")),
                "comments": _int(p.get("comments")),
                "shares": _int(p.get("shares")),
                "posted_at": p.get("time"),
            }
            for p in posts
        ]
        return summarize_posts(self.platform, handle, page.get("title"), followers, normalized)


class LinkedInAdapter(ApifySocialAdapter):
    platform = "linkedin"
    default_timeout = 90.0

    async def scrape(self, handle: str) -> Dict[str, Any]:
        url = handle if handle.startswith("http") else f"https://www.linkedin.com/company/{handle}"
        items = await self.run_actor("scraper-engine/linkedin-company-post-scraper", {
            "urls": [url],
            "max_posts": POSTS_LIMIT,
        })
        if not items:
            raise ProviderError(f"No LinkedIn posts found for {handle}", retryable=False)

        first = items[0]
        followers = _int(first.get("authorFollowers") or first.get("followerCount"))
        normalized = [
            {
                "url": p.get("url"),
                "likes": _int(p.get("numLikes")),
                "comments": _int(p.get("numComments")),
                "shares": _int(p.get("numShares")),
                "posted_at": p.get("postedAtISO"),
            }
            for p in items
        ]
        return summarize_posts(
            self.platform, handle, first.get("authorFullName") or first.get("authorName"),
            followers, normalized,
        )


class OwnSocialAdapter(ProviderAdapter):
    """
    Own-side social: cached metrics first, live scrape on miss.

    A fresh scrape is written back to the cache. If the scrape fails or
    times out, an expired cached entry is served instead; only when there
    is nothing cached at all does the failure surface.
    """

    # Added to the live scrape timeout; the stale fallback runs inside it.
    FALLBACK_GRACE_SECONDS = 5.0

    def __init__(self, live: ApifySocialAdapter, cache: SocialMetricsCache):
        super().__init__(live.client, live.timeout + self.FALLBACK_GRACE_SECONDS)
        self.live = live
        self.cache = cache
        self.name = live.name

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        platform = self.live.platform
        if not target.handle:
            raise ProviderInputError(f"No {platform} account connected")

        cached = self.cache.get(target.identity, platform, handle=target.handle)
        if cached is not None:
            logger.info(f"Own {platform} metrics served from cache for {target.identity}")
            return cached

        try:
            metrics = await asyncio.wait_for(self.live._fetch(target), timeout=self.live.timeout)
        except (asyncio.TimeoutError, ProviderError) as e:
            stale = self.cache.get(target.identity, platform, handle=target.handle, ignore_expiration=True)
            if stale is None:
                raise
            logger.warning(f"Own {platform} scrape failed ({e or 'timeout'}); serving stale cache")
            return stale

        self.cache.set(target.identity, platform, target.handle, metrics)
        return metrics
