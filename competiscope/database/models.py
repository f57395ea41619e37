"""
SQLAlchemy Models for Competiscope

Only what cache matching, social sub-caches and profile lookups need:
- competitor_cache: one composite result per (identity, own, competitor)
- social_metrics_cache: own-side social metrics per (identity, platform)
- social_connections: which social accounts an identity has connected
- saved_competitors: competitors an identity tracks, with their handles
- user_plans: subscription tier per identity
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, JSON, Index, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# =============================================================================
# COMPOSITE CACHE
# =============================================================================

class CompetitorCacheEntry(Base):
    """
    Cached, unfiltered comparison report.

    The unique constraint on the analysis key makes every write an upsert:
    a new fingerprint for the same key replaces the old row instead of
    adding a second one. Social handle columns hold the normalized
    identities the payload was computed with.
    """
    __tablename__ = "competitor_cache"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    identity = Column(String(255), nullable=False)
    own_domain = Column(String(255), nullable=False)
    competitor_domain = Column(String(255), nullable=False)

    own_facebook = Column(String(255))
    own_instagram = Column(String(255))
    own_linkedin = Column(String(255))
    competitor_facebook = Column(String(255))
    competitor_instagram = Column(String(255))
    competitor_linkedin = Column(String(255))

    payload = Column(JSON, nullable=False)
    partial_failure = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("identity", "own_domain", "competitor_domain", name="uq_competitor_cache_key"),
        Index("idx_competitor_cache_expires", "expires_at"),
    )

    def __repr__(self):
        return f"<CompetitorCacheEntry {self.identity}:{self.own_domain}:{self.competitor_domain}>"


class SocialMetricsCacheEntry(Base):
    """Own-side social metrics fetched through the connected account."""
    __tablename__ = "social_metrics_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity = Column(String(255), nullable=False)
    platform = Column(String(20), nullable=False)
    handle = Column(String(255))
    metrics = Column(JSON, nullable=False)
    fetched_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("identity", "platform", name="uq_social_metrics_identity_platform"),
    )


# =============================================================================
# PROFILES
# =============================================================================

class SocialConnection(Base):
    """An identity's connected social account."""
    __tablename__ = "social_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity = Column(String(255), nullable=False)
    platform = Column(String(20), nullable=False)
    handle = Column(String(255))
    connected = Column(Boolean, default=True)
    connected_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("identity", "platform", name="uq_social_connection_identity_platform"),
    )


class SavedCompetitor(Base):
    """Competitor an identity tracks, with the handles to compare against."""
    __tablename__ = "saved_competitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)
    facebook = Column(String(255))
    instagram = Column(String(255))
    linkedin = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("identity", "domain", name="uq_saved_competitor_identity_domain"),
    )


class UserPlan(Base):
    """Subscription tier per identity."""
    __tablename__ = "user_plans"

    identity = Column(String(255), primary_key=True)
    tier = Column(String(20), nullable=False, default="starter")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
