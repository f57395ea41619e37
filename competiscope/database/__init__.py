"""
Database Module

SQLAlchemy models and session management for cache and profile storage.
"""

from .models import (
    Base,
    CompetitorCacheEntry,
    SocialMetricsCacheEntry,
    SocialConnection,
    SavedCompetitor,
    UserPlan,
)
from .session import (
    get_database_url,
    create_db_engine,
    get_engine,
    get_session_factory,
    init_db,
    check_db_connection,
)

__all__ = [
    "Base",
    "CompetitorCacheEntry",
    "SocialMetricsCacheEntry",
    "SocialConnection",
    "SavedCompetitor",
    "UserPlan",
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
    "check_db_connection",
]
