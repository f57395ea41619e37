"""
Social Metrics Sub-Cache

Own-side social metrics are short-lived (30 minutes by default). The
analysis reads them with ignore_expiration when a live fetch fails, so a
stale follower count beats an empty section.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from competiscope.cache.config import CacheConfig, get_cache_config
from competiscope.database.models import SocialMetricsCacheEntry
from competiscope.utils.domains import normalize_handle

logger = logging.getLogger(__name__)


class SocialMetricsCache:
    """Per (identity, platform) cache of a connected account's metrics."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        if session_factory is None:
            from competiscope.database.session import get_session_factory
            session_factory = get_session_factory()
        self._session_factory = session_factory
        self.config = config or get_cache_config()
        self._clock = clock

    def get(
        self,
        identity: str,
        platform: str,
        handle: Optional[str] = None,
        ignore_expiration: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Cached metrics for a platform.

        A cached entry for a different handle than the one requested is a
        miss. Returns None on database errors.
        """
        try:
            with self._session_factory() as db:
                entry = db.query(SocialMetricsCacheEntry).filter(
                    SocialMetricsCacheEntry.identity == identity,
                    SocialMetricsCacheEntry.platform == platform,
                ).first()

                if entry is None:
                    return None
                if handle is not None and entry.handle != normalize_handle(handle):
                    logger.debug(f"Social cache for {identity}/{platform} holds another account")
                    return None
                expired = entry.expires_at <= self._clock()
                if expired and not ignore_expiration:
                    return None

                metrics = dict(entry.metrics)
                metrics["cached"] = True
                metrics["stale"] = expired
                metrics["fetched_at"] = entry.fetched_at.isoformat()
                return metrics

        except Exception as e:
            logger.error(f"Social cache get error for {identity}/{platform}: {e}")
            return None

    def set(
        self,
        identity: str,
        platform: str,
        handle: Optional[str],
        metrics: Dict[str, Any],
    ) -> bool:
        now = self._clock()
        try:
            with self._session_factory() as db:
                entry = db.query(SocialMetricsCacheEntry).filter(
                    SocialMetricsCacheEntry.identity == identity,
                    SocialMetricsCacheEntry.platform == platform,
                ).first()
                if entry is None:
                    entry = SocialMetricsCacheEntry(identity=identity, platform=platform)
                    db.add(entry)
                entry.handle = normalize_handle(handle)
                entry.metrics = metrics
                entry.fetched_at = now
                entry.expires_at = now + self.config.social_ttl
                db.commit()
            return True
        except IntegrityError:
            logger.warning(f"Concurrent social cache insert for {identity}/{platform}")
            return False
        except Exception as e:
            logger.error(f"Social cache set error for {identity}/{platform}: {e}")
            return False
