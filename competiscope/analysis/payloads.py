"""
Section Payload Schemas

Each provider's payload is a tagged variant: the section name is the tag
and one of the models below is its schema. The compositor validates every
successful outcome against its schema before merging, so malformed
provider data becomes an explicit unavailable section instead of a
half-filled one.
"""

from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field

from .models import (
    ADS, BACKLINKS, CONTENT, PERFORMANCE, SOCIAL_FACEBOOK, SOCIAL_INSTAGRAM,
    SOCIAL_LINKEDIN, TECHNICAL, TRAFFIC,
)


class SectionPayload(BaseModel):
    """Base for all section schemas. Unknown provider fields are kept."""

    class Config:
        extra = "allow"


# =============================================================================
# SITE SECTIONS
# =============================================================================

class LighthouseScores(BaseModel):
    performance: Optional[float] = None
    accessibility: Optional[float] = None
    best_practices: Optional[float] = None
    seo: Optional[float] = None


class PageSpeedMetrics(BaseModel):
    performance_score: Optional[float] = None
    first_contentful_paint_ms: Optional[float] = None
    largest_contentful_paint_ms: Optional[float] = None
    total_blocking_time_ms: Optional[float] = None
    cumulative_layout_shift: Optional[float] = None
    speed_index_ms: Optional[float] = None


class PerformancePayload(SectionPayload):
    lighthouse: LighthouseScores = Field(default_factory=LighthouseScores)
    pagespeed: Dict[str, PageSpeedMetrics] = Field(default_factory=dict)


class TechnicalPayload(SectionPayload):
    is_https: bool = False
    status_code: Optional[int] = None
    response_time_ms: Optional[float] = None
    has_robots_txt: bool = False
    has_sitemap: bool = False
    sitemap_urls: int = 0
    cdn: Optional[str] = None
    mixed_content: bool = False


class Headings(BaseModel):
    h1: int = 0
    h2: int = 0
    h3: int = 0


class Technology(BaseModel):
    cms: Optional[str] = None
    frameworks: List[str] = Field(default_factory=list)
    analytics: List[str] = Field(default_factory=list)
    third_party_scripts: int = 0


class ContentPayload(SectionPayload):
    title: Optional[str] = None
    meta_description: Optional[str] = None
    canonical: Optional[str] = None
    headings: Headings = Field(default_factory=Headings)
    has_open_graph: bool = False
    has_twitter_card: bool = False
    structured_data_count: int = 0
    word_count: int = 0
    paragraph_count: int = 0
    images_total: int = 0
    images_alt_coverage: float = 0.0
    links_internal: int = 0
    links_external: int = 0
    technology: Technology = Field(default_factory=Technology)


class BacklinksPayload(SectionPayload):
    total_backlinks: int = 0
    referring_domains: int = 0
    dofollow: Optional[int] = None
    nofollow: Optional[int] = None
    domain_rank: Optional[float] = None
    top_linking_pages: List[Dict[str, Any]] = Field(default_factory=list)
    source: str = "se_ranking"


class TrafficPayload(SectionPayload):
    monthly_visits: Optional[int] = None
    avg_visit_duration: Optional[float] = None
    pages_per_visit: Optional[float] = None
    bounce_rate: Optional[float] = None
    global_rank: Optional[int] = None
    traffic_sources: Dict[str, float] = Field(default_factory=dict)
    top_pages: List[Dict[str, Any]] = Field(default_factory=list)
    top_queries: List[Dict[str, Any]] = Field(default_factory=list)
    source: str = "similarweb"


# =============================================================================
# SOCIAL & ADS
# =============================================================================

class SocialPayload(SectionPayload):
    platform: str
    handle: Optional[str] = None
    name: Optional[str] = None
    followers: int = 0
    avg_likes: float = 0.0
    avg_comments: float = 0.0
    avg_shares: float = 0.0
    avg_interactions: float = 0.0
    engagement_rate: float = 0.0
    posts_analyzed: int = 0
    top_posts: List[Dict[str, Any]] = Field(default_factory=list)
    follower_growth: List[Dict[str, Any]] = Field(default_factory=list)
    history: List[Dict[str, Any]] = Field(default_factory=list)
    source: str = "scraper"
    cached: bool = False


class AdsPayload(SectionPayload):
    page_name: Optional[str] = None
    active_ads: int = 0
    platforms: List[str] = Field(default_factory=list)
    ads: List[Dict[str, Any]] = Field(default_factory=list)


SECTION_SCHEMAS: Dict[str, Type[SectionPayload]] = {
    PERFORMANCE: PerformancePayload,
    TECHNICAL: TechnicalPayload,
    CONTENT: ContentPayload,
    BACKLINKS: BacklinksPayload,
    TRAFFIC: TrafficPayload,
    SOCIAL_FACEBOOK: SocialPayload,
    SOCIAL_INSTAGRAM: SocialPayload,
    SOCIAL_LINKEDIN: SocialPayload,
    ADS: AdsPayload,
}


def validate_payload(section: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a raw provider payload against its section schema.

    Raises:
        KeyError: section has no schema
        pydantic.ValidationError: payload does not fit the schema
    """
    schema = SECTION_SCHEMAS[section]
    return schema.model_validate(payload).model_dump()
