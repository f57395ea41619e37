"""
Social Connection Registry

Which social accounts an identity has connected, and under which handle.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker

from competiscope.cache.fingerprint import PLATFORMS
from competiscope.database.models import SocialConnection
from competiscope.utils.domains import normalize_handle, normalize_identity

logger = logging.getLogger(__name__)


class SocialConnectionRegistry:

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from competiscope.database.session import get_session_factory
            session_factory = get_session_factory()
        self._session_factory = session_factory

    def get_handles(self, identity: str) -> Dict[str, str]:
        """Normalized handle per connected platform. Empty on database errors."""
        try:
            with self._session_factory() as db:
                rows = db.query(SocialConnection).filter(
                    SocialConnection.identity == identity,
                    SocialConnection.connected.is_(True),
                ).all()
                return {
                    row.platform: normalize_handle(row.handle)
                    for row in rows
                    if row.platform in PLATFORMS and normalize_handle(row.handle)
                }
        except Exception as e:
            logger.error(f"Social connection lookup failed for {identity}: {e}")
            return {}

    def connect(self, identity: str, platform: str, handle: str) -> None:
        if platform not in PLATFORMS:
            raise ValueError(f"Unknown platform: {platform}")
        identity = normalize_identity(identity)
        with self._session_factory() as db:
            row = db.query(SocialConnection).filter(
                SocialConnection.identity == identity,
                SocialConnection.platform == platform,
            ).first()
            if row is None:
                row = SocialConnection(identity=identity, platform=platform)
                db.add(row)
            row.handle = normalize_handle(handle)
            row.connected = True
            row.connected_at = datetime.utcnow()
            db.commit()

    def disconnect(self, identity: str, platform: str) -> None:
        with self._session_factory() as db:
            db.query(SocialConnection).filter(
                SocialConnection.identity == identity,
                SocialConnection.platform == platform,
            ).update({"connected": False})
            db.commit()
