"""
Saved Competitor Store

Competitors an identity tracks. Used to resolve competitor social handles
a request leaves out, and to enforce the per-plan competitor limit.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from competiscope.cache.fingerprint import PLATFORMS
from competiscope.database.models import SavedCompetitor
from competiscope.utils.domains import normalize_domain, normalize_handle

logger = logging.getLogger(__name__)


class SavedCompetitorStore:

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from competiscope.database.session import get_session_factory
            session_factory = get_session_factory()
        self._session_factory = session_factory

    def _find(self, db, identity: str, domain: str) -> Optional[SavedCompetitor]:
        return db.query(SavedCompetitor).filter(
            SavedCompetitor.identity == identity,
            SavedCompetitor.domain == normalize_domain(domain),
        ).first()

    def list_competitors(self, identity: str) -> List[Dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.query(SavedCompetitor).filter(
                SavedCompetitor.identity == identity
            ).order_by(SavedCompetitor.created_at).all()
            return [
                {"domain": row.domain, **{p: getattr(row, p) for p in PLATFORMS}}
                for row in rows
            ]

    def count(self, identity: str) -> int:
        with self._session_factory() as db:
            return db.query(SavedCompetitor).filter(SavedCompetitor.identity == identity).count()

    def exists(self, identity: str, domain: str) -> bool:
        with self._session_factory() as db:
            return self._find(db, identity, domain) is not None

    def get_handles(self, identity: str, domain: str) -> Dict[str, str]:
        """Saved handles for a competitor; empty if unknown or on database errors."""
        try:
            with self._session_factory() as db:
                row = self._find(db, identity, domain)
                if row is None:
                    return {}
                return {p: getattr(row, p) for p in PLATFORMS if getattr(row, p)}
        except Exception as e:
            logger.error(f"Saved competitor lookup failed for {identity}/{domain}: {e}")
            return {}

    def save(self, identity: str, domain: str, handles: Optional[Dict[str, Optional[str]]] = None) -> bool:
        """Insert or update a competitor. Handles left out keep their saved value."""
        handles = handles or {}
        try:
            with self._session_factory() as db:
                row = self._find(db, identity, domain)
                if row is None:
                    row = SavedCompetitor(identity=identity, domain=normalize_domain(domain))
                    db.add(row)
                for platform in PLATFORMS:
                    handle = normalize_handle(handles.get(platform))
                    if handle:
                        setattr(row, platform, handle)
                db.commit()
            return True
        except IntegrityError:
            logger.warning(f"Concurrent save of competitor {domain} for {identity}")
            return False
        except Exception as e:
            logger.error(f"Failed to save competitor {domain} for {identity}: {e}")
            return False
