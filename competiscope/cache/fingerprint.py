"""
Cache Fingerprinting

A cached comparison is only valid for a request when it was computed for
the same caller and domain pair AND the same social accounts on both
sides. Reconnecting a different Instagram account must not serve a
comparison built from the old one.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from competiscope.utils.domains import normalize_domain, normalize_handle, normalize_identity

PLATFORMS = ("facebook", "instagram", "linkedin")


@dataclass(frozen=True)
class AnalysisKey:
    """Caller identity plus normalized own/competitor domains."""
    identity: str
    own_domain: str
    competitor_domain: str

    @classmethod
    def build(cls, identity: str, own_site: str, competitor_site: str) -> "AnalysisKey":
        return cls(
            identity=normalize_identity(identity),
            own_domain=normalize_domain(own_site),
            competitor_domain=normalize_domain(competitor_site),
        )

    def __str__(self) -> str:
        return f"{self.identity}:{self.own_domain}:{self.competitor_domain}"


@dataclass(frozen=True)
class SocialIdentity:
    """Normalized handle per platform for one side. None means not connected."""
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    linkedin: Optional[str] = None

    @classmethod
    def from_handles(cls, handles: Optional[Dict[str, Optional[str]]] = None) -> "SocialIdentity":
        handles = handles or {}
        return cls(**{p: normalize_handle(handles.get(p)) for p in PLATFORMS})

    def handle(self, platform: str) -> Optional[str]:
        return getattr(self, platform)

    def connected(self) -> Dict[str, str]:
        """Platforms with a handle, in canonical order."""
        return {p: getattr(self, p) for p in PLATFORMS if getattr(self, p)}

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {p: getattr(self, p) for p in PLATFORMS}


@dataclass(frozen=True)
class CacheFingerprint:
    """The unit of cache validity."""
    key: AnalysisKey
    own_social: SocialIdentity = field(default_factory=SocialIdentity)
    competitor_social: SocialIdentity = field(default_factory=SocialIdentity)

    def matches(self, other: "CacheFingerprint") -> bool:
        """Exact match on key and every platform of both sides."""
        return (
            self.key == other.key
            and self.own_social == other.own_social
            and self.competitor_social == other.competitor_social
        )

    def mismatched_platforms(self, other: "CacheFingerprint") -> Dict[str, list]:
        """Which platforms differ per side (for logging cache misses)."""
        return {
            "own": [p for p in PLATFORMS if self.own_social.handle(p) != other.own_social.handle(p)],
            "competitor": [
                p for p in PLATFORMS
                if self.competitor_social.handle(p) != other.competitor_social.handle(p)
            ],
        }
