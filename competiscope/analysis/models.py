"""
Analysis Data Models

Request, provider outcome and composite result types shared by the
orchestrator, compositor, cache store and API layer.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from competiscope.cache.fingerprint import AnalysisKey, CacheFingerprint, SocialIdentity


# =============================================================================
# SECTIONS
# =============================================================================

class Side(enum.Enum):
    """Which site a section belongs to."""
    OWN = "own"
    COMPETITOR = "competitor"


PERFORMANCE = "performance"
TECHNICAL = "technical"
CONTENT = "content"
BACKLINKS = "backlinks"
TRAFFIC = "traffic"
ADS = "ads"
SOCIAL_FACEBOOK = "social.facebook"
SOCIAL_INSTAGRAM = "social.instagram"
SOCIAL_LINKEDIN = "social.linkedin"

SITE_SECTIONS = (PERFORMANCE, TECHNICAL, CONTENT, BACKLINKS, TRAFFIC)
SOCIAL_SECTIONS = (SOCIAL_FACEBOOK, SOCIAL_INSTAGRAM, SOCIAL_LINKEDIN)
ALL_SECTIONS = SITE_SECTIONS + SOCIAL_SECTIONS + (ADS,)


def social_section(platform: str) -> str:
    return f"social.{platform}"


def section_platform(section: str) -> Optional[str]:
    return section.split(".", 1)[1] if section.startswith("social.") else None


# Refresh groups a caller may name, mapped to the sections they rewrite.
# "social" expands to whichever social sections are connected.
REFRESH_GROUPS: Dict[str, tuple] = {
    "seo": (PERFORMANCE, BACKLINKS),
    "technical": (TECHNICAL,),
    "content": (CONTENT,),
    "traffic": (TRAFFIC,),
    "social": SOCIAL_SECTIONS,
    "ads": (ADS,),
}


# =============================================================================
# UNAVAILABLE MARKER
# =============================================================================

UNAVAILABLE = "unavailable"


def unavailable(reason: str, outcome: Optional[str] = None) -> Dict[str, Any]:
    """Explicit marker for a section with no usable data."""
    marker = {"status": UNAVAILABLE, "reason": reason}
    if outcome:
        marker["outcome"] = outcome
    return marker


def is_unavailable(value: Any) -> bool:
    return value is None or (isinstance(value, dict) and value.get("status") == UNAVAILABLE)


# =============================================================================
# REQUEST
# =============================================================================

@dataclass
class AnalysisRequest:
    """One analyze or refresh call. Lives for a single request."""
    identity: str
    own_site: str
    competitor_site: str
    own_handles: Dict[str, Optional[str]] = field(default_factory=dict)
    competitor_handles: Dict[str, Optional[str]] = field(default_factory=dict)
    force_refresh: bool = False
    section: Optional[str] = None

    @property
    def key(self) -> AnalysisKey:
        return AnalysisKey.build(self.identity, self.own_site, self.competitor_site)

    @property
    def own_social(self) -> SocialIdentity:
        return SocialIdentity.from_handles(self.own_handles)

    @property
    def competitor_social(self) -> SocialIdentity:
        return SocialIdentity.from_handles(self.competitor_handles)

    @property
    def fingerprint(self) -> CacheFingerprint:
        return CacheFingerprint(
            key=self.key,
            own_social=self.own_social,
            competitor_social=self.competitor_social,
        )

    def social_for(self, side: Side) -> SocialIdentity:
        return self.own_social if side == Side.OWN else self.competitor_social


# =============================================================================
# PROVIDER OUTCOME
# =============================================================================

class OutcomeStatus(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass
class ProviderOutcome:
    """Result of one adapter call for one side. Consumed by the compositor."""
    provider_name: str
    side: Side
    status: OutcomeStatus
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @property
    def section(self) -> str:
        return self.provider_name

    def failure_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider_name,
            "side": self.side.value,
            "status": self.status.value,
            "error": self.error,
            "retryable": self.retryable,
            "elapsed_ms": round(self.elapsed_ms),
        }


# =============================================================================
# COMPOSITE RESULT
# =============================================================================

@dataclass
class CompositeResult:
    """
    Two-sided comparison report.

    own_side / competitor_side map section name to that section's payload
    or an unavailable marker. This unfiltered form is what gets cached.
    """
    own_domain: str
    competitor_domain: str
    own_side: Dict[str, Any] = field(default_factory=dict)
    competitor_side: Dict[str, Any] = field(default_factory=dict)
    comparison: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    expires_at: datetime = field(default_factory=lambda: datetime.utcnow() + timedelta(days=7))
    partial_failure: bool = False
    failed_providers: List[str] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    from_cache: bool = False

    def side(self, side: Side) -> Dict[str, Any]:
        return self.own_side if side == Side.OWN else self.competitor_side

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def has_usable_data(self) -> bool:
        """True if any section on either side holds real data."""
        return any(
            not is_unavailable(v)
            for v in list(self.own_side.values()) + list(self.competitor_side.values())
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "your_site": {"domain": self.own_domain, "sections": self.own_side},
            "competitor_site": {"domain": self.competitor_domain, "sections": self.competitor_side},
            "comparison": self.comparison,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "partial_failure": self.partial_failure,
            "failed_providers": list(self.failed_providers),
            "failures": list(self.failures),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompositeResult":
        own = data.get("your_site", {})
        competitor = data.get("competitor_site", {})
        return cls(
            own_domain=own.get("domain", ""),
            competitor_domain=competitor.get("domain", ""),
            own_side=dict(own.get("sections", {})),
            competitor_side=dict(competitor.get("sections", {})),
            comparison=data.get("comparison", {}),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            partial_failure=data.get("partial_failure", False),
            failed_providers=list(data.get("failed_providers", [])),
            failures=list(data.get("failures", [])),
        )
