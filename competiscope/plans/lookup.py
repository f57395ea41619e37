"""
Plan Lookup

Caller tier from the user_plans table, cached in-process for a few
minutes. Unknown callers and database errors resolve to starter.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from competiscope.database.models import UserPlan
from competiscope.utils.domains import normalize_identity
from .features import PlanTier

logger = logging.getLogger(__name__)


class PlanLookup:
    """
    Usage:
        plans = PlanLookup(session_factory)
        tier = plans.get_tier(identity)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        cache_seconds: float = 300,
        clock: Callable[[], float] = time.time,
    ):
        if session_factory is None:
            from competiscope.database.session import get_session_factory
            session_factory = get_session_factory()
        self._session_factory = session_factory
        self.cache_seconds = cache_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[PlanTier, float]] = {}

    def get_tier(self, identity: str) -> PlanTier:
        cached = self._cache.get(identity)
        if cached and cached[1] > self._clock():
            return cached[0]

        tier = PlanTier.STARTER
        try:
            with self._session_factory() as db:
                row = db.query(UserPlan).filter(UserPlan.identity == identity).first()
                if row is not None:
                    tier = PlanTier.parse(row.tier)
        except Exception as e:
            logger.error(f"Plan lookup failed for {identity}, defaulting to starter: {e}")
            return tier

        self._cache[identity] = (tier, self._clock() + self.cache_seconds)
        return tier

    def set_tier(self, identity: str, tier: PlanTier) -> None:
        """Persist a tier and drop the cached value."""
        identity = normalize_identity(identity)
        with self._session_factory() as db:
            row = db.query(UserPlan).filter(UserPlan.identity == identity).first()
            if row is None:
                row = UserPlan(identity=identity)
                db.add(row)
            row.tier = PlanTier.parse(tier).value
            db.commit()
        self.invalidate(identity)

    def invalidate(self, identity: Optional[str] = None) -> None:
        if identity is None:
            self._cache.clear()
        else:
            self._cache.pop(identity, None)
