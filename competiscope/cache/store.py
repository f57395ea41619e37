"""
Competitor Cache Store

SQL-backed cache of unfiltered comparison reports, one row per
AnalysisKey. A row only serves a request whose fingerprint matches it
exactly; writes replace whatever row the key already has.

Failure handling mirrors the rest of the cache layer: every database
error is logged and reported as a miss (lookup) or False/None (write,
patch). A cache outage slows requests down; it never fails them.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from competiscope.analysis.compositor import apply_updates
from competiscope.analysis.models import CompositeResult, Side
from competiscope.cache.config import CacheConfig, get_cache_config
from competiscope.cache.fingerprint import AnalysisKey, CacheFingerprint, PLATFORMS, SocialIdentity
from competiscope.database.models import CompetitorCacheEntry

logger = logging.getLogger(__name__)


class CompetitorCacheStore:
    """
    Fingerprinted cache of CompositeResults.

    Usage:
        store = CompetitorCacheStore(session_factory)
        cached = store.lookup(request.fingerprint)
        if cached is None:
            ...
            store.write(request.fingerprint, result)
    """

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
        self._stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "patches": 0,
            "errors": 0,
        }

    # =========================================================================
    # Row helpers
    # =========================================================================

    @staticmethod
    def _query_key(db: Session, key: AnalysisKey):
        return db.query(CompetitorCacheEntry).filter(
            CompetitorCacheEntry.identity == key.identity,
            CompetitorCacheEntry.own_domain == key.own_domain,
            CompetitorCacheEntry.competitor_domain == key.competitor_domain,
        )

    @staticmethod
    def fingerprint_of(entry: CompetitorCacheEntry) -> CacheFingerprint:
        return CacheFingerprint(
            key=AnalysisKey(entry.identity, entry.own_domain, entry.competitor_domain),
            own_social=SocialIdentity(**{p: getattr(entry, f"own_{p}") for p in PLATFORMS}),
            competitor_social=SocialIdentity(
                **{p: getattr(entry, f"competitor_{p}") for p in PLATFORMS}
            ),
        )

    @staticmethod
    def _bind_fingerprint(entry: CompetitorCacheEntry, fingerprint: CacheFingerprint) -> None:
        for platform in PLATFORMS:
            setattr(entry, f"own_{platform}", fingerprint.own_social.handle(platform))
            setattr(entry, f"competitor_{platform}", fingerprint.competitor_social.handle(platform))

    def _to_result(self, entry: CompetitorCacheEntry) -> CompositeResult:
        result = CompositeResult.from_dict(entry.payload)
        result.expires_at = entry.expires_at
        result.from_cache = True
        return result

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(
        self,
        fingerprint: CacheFingerprint,
        ignore_expiration: bool = False,
    ) -> Optional[CompositeResult]:
        """
        Exact-fingerprint lookup.

        Returns None on miss, on any social identity mismatch, on expiry
        (unless ignore_expiration) and on database errors.
        """
        if not self.config.enabled:
            return None

        try:
            with self._session_factory() as db:
                entry = self._query_key(db, fingerprint.key).order_by(
                    desc(CompetitorCacheEntry.created_at)
                ).first()

                if entry is None:
                    self._stats["misses"] += 1
                    logger.info(f"Cache miss for {fingerprint.key}: no entry")
                    return None

                stored = self.fingerprint_of(entry)
                if not stored.matches(fingerprint):
                    self._stats["misses"] += 1
                    logger.info(
                        f"Cache miss for {fingerprint.key}: social identity changed "
                        f"{stored.mismatched_platforms(fingerprint)}"
                    )
                    return None

                if not ignore_expiration and entry.expires_at <= self._clock():
                    self._stats["misses"] += 1
                    logger.info(f"Cache miss for {fingerprint.key}: expired at {entry.expires_at}")
                    return None

                self._stats["hits"] += 1
                logger.info(f"Cache hit for {fingerprint.key}")
                return self._to_result(entry)

        except Exception as e:
            self._stats["errors"] += 1
            self._stats["misses"] += 1
            logger.error(f"Cache lookup error for {fingerprint.key}: {e}")
            return None

    def latest(self, key: AnalysisKey) -> Optional[CompositeResult]:
        """Most recent result for a key, ignoring social identity and expiry."""
        try:
            with self._session_factory() as db:
                entry = self._query_key(db, key).order_by(
                    desc(CompetitorCacheEntry.created_at)
                ).first()
                return self._to_result(entry) if entry else None
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache latest error for {key}: {e}")
            return None

    # =========================================================================
    # Write
    # =========================================================================

    def write(self, fingerprint: CacheFingerprint, result: CompositeResult) -> bool:
        """
        Upsert the result for fingerprint.key.

        Replaces any prior row for the key regardless of its social
        identity; the new fingerprint becomes authoritative.
        """
        if not self.config.enabled:
            return False

        for attempt in range(2):
            try:
                with self._session_factory() as db:
                    entry = self._query_key(db, fingerprint.key).first()
                    if entry is None:
                        entry = CompetitorCacheEntry(
                            identity=fingerprint.key.identity,
                            own_domain=fingerprint.key.own_domain,
                            competitor_domain=fingerprint.key.competitor_domain,
                        )
                        db.add(entry)

                    self._bind_fingerprint(entry, fingerprint)
                    entry.payload = result.to_dict()
                    entry.partial_failure = result.partial_failure
                    entry.created_at = result.created_at
                    entry.updated_at = self._clock()
                    entry.expires_at = result.expires_at
                    db.commit()

                self._stats["writes"] += 1
                logger.debug(f"Cached comparison for {fingerprint.key} until {result.expires_at}")
                return True

            except IntegrityError:
                # A concurrent writer inserted the key first; retry as an update
                logger.warning(f"Concurrent cache insert for {fingerprint.key}, retrying as update")
                continue
            except Exception as e:
                self._stats["errors"] += 1
                logger.error(f"Cache write error for {fingerprint.key}: {e}")
                return False

        self._stats["errors"] += 1
        return False

    # =========================================================================
    # Section patch
    # =========================================================================

    def patch_section(
        self,
        fingerprint: CacheFingerprint,
        section: str,
        payload: Dict[Side, Any],
    ) -> Optional[CompositeResult]:
        """Overwrite one section. See patch_sections."""
        return self.patch_sections(fingerprint, {section: payload})

    def patch_sections(
        self,
        fingerprint: CacheFingerprint,
        updates: Dict[str, Dict[Side, Any]],
        failures: Optional[List[Dict[str, Any]]] = None,
        rebind_social: bool = False,
    ) -> Optional[CompositeResult]:
        """
        Overwrite named sections of the latest result for fingerprint.key.

        Loads the newest row for the key ignoring social identity and
        expiry, replaces only the (section, side) values in `updates`,
        recomputes the comparison and re-persists with a fresh TTL.
        Failure records for the patched sections are replaced by
        `failures`. With rebind_social the row takes the request's
        social identities.

        Returns the patched result, or None if there was nothing to patch
        or the database failed.
        """
        try:
            with self._session_factory() as db:
                entry = self._query_key(db, fingerprint.key).order_by(
                    desc(CompetitorCacheEntry.created_at)
                ).first()
                if entry is None:
                    logger.info(f"Nothing cached to patch for {fingerprint.key}")
                    return None

                result = apply_updates(
                    CompositeResult.from_dict(entry.payload),
                    updates,
                    failures,
                    expires_at=self._clock() + self.config.competitor_ttl,
                )

                if rebind_social:
                    self._bind_fingerprint(entry, fingerprint)
                entry.payload = result.to_dict()
                entry.partial_failure = result.partial_failure
                entry.updated_at = self._clock()
                entry.expires_at = result.expires_at
                db.commit()

            self._stats["patches"] += 1
            logger.info(f"Patched {sorted(updates)} for {fingerprint.key}")
            return result

        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache patch error for {fingerprint.key}: {e}")
            return None

    # =========================================================================
    # Maintenance
    # =========================================================================

    def status(self, key: AnalysisKey) -> Dict[str, Any]:
        """Existence and freshness of the row for a key."""
        try:
            with self._session_factory() as db:
                entry = self._query_key(db, key).first()
                if entry is None:
                    return {"exists": False}
                return {
                    "exists": True,
                    "expired": entry.expires_at <= self._clock(),
                    "created_at": entry.created_at.isoformat(),
                    "expires_at": entry.expires_at.isoformat(),
                    "partial_failure": bool(entry.partial_failure),
                    "social": {
                        "own": self.fingerprint_of(entry).own_social.to_dict(),
                        "competitor": self.fingerprint_of(entry).competitor_social.to_dict(),
                    },
                }
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache status error for {key}: {e}")
            return {"exists": False, "error": str(e)}

    def purge_expired(self) -> int:
        """Delete expired rows. Returns count deleted."""
        try:
            with self._session_factory() as db:
                count = db.query(CompetitorCacheEntry).filter(
                    CompetitorCacheEntry.expires_at <= self._clock()
                ).delete()
                db.commit()
            if count:
                logger.info(f"Purged {count} expired comparison entries")
            return count
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Cache purge error: {e}")
            return 0

    def get_stats(self) -> Dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "hit_rate_percent": round(self._stats["hits"] / total * 100, 2) if total else 0.0,
        }
