"""
Analysis Service

The analyze and refresh-section entrypoints. Order of operations for a
request:

1. Analysis lock for the AnalysisKey (409 while another run is in flight)
2. Rate limit for the identity (429)
3. Competitor limit for the caller's plan (403)
4. Cache lookup by fingerprint, unless force_refresh
5. Fan-out, compose, write-through
6. Plan filter on the way out

The lock is released on every exit path. A cache hit close to expiry
queues a background refresh after the lock is released.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from competiscope.admission.lock import AnalysisLock
from competiscope.admission.rate_limiter import RateLimiter
from competiscope.cache.config import CacheConfig, get_cache_config
from competiscope.cache.store import CompetitorCacheStore
from competiscope.plans.features import PlanTier, get_plan_features, lowest_tier_with
from competiscope.plans.filter import filter_result
from competiscope.plans.lookup import PlanLookup
from competiscope.profiles.competitors import SavedCompetitorStore
from competiscope.profiles.connections import SocialConnectionRegistry
from competiscope.utils.domains import normalize_domain, normalize_handle, normalize_identity
from .background import BackgroundRefreshQueue
from .compositor import apply_updates, section_updates
from .errors import (
    AnalysisInProgress, CompetitorLimitReached, InvalidRequestError, RateLimited,
)
from .models import REFRESH_GROUPS, AnalysisRequest, CompositeResult
from .orchestrator import FanOutOrchestrator

logger = logging.getLogger(__name__)


def _clean_handles(handles: Optional[Dict[str, Optional[str]]]) -> Dict[str, str]:
    cleaned = {}
    for platform, handle in (handles or {}).items():
        normalized = normalize_handle(handle)
        if normalized:
            cleaned[platform] = normalized
    return cleaned


class AnalysisService:
    """
    Usage:
        service = AnalysisService(store, orchestrator, rate_limiter, lock, plans,
                                  connections, competitors)
        body = await service.analyze(identity, "a.com", "b.com")
    """

    def __init__(
        self,
        store: CompetitorCacheStore,
        orchestrator: FanOutOrchestrator,
        rate_limiter: RateLimiter,
        lock: AnalysisLock,
        plans: PlanLookup,
        connections: SocialConnectionRegistry,
        competitors: SavedCompetitorStore,
        background: Optional[BackgroundRefreshQueue] = None,
        cache_config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.rate_limiter = rate_limiter
        self.lock = lock
        self.plans = plans
        self.connections = connections
        self.competitors = competitors
        self.background = background
        self.cache_config = cache_config or get_cache_config()
        self._clock = clock

    # =========================================================================
    # Request building
    # =========================================================================

    def build_request(
        self,
        identity: str,
        own_site: str,
        competitor_site: str,
        own_handles: Optional[Dict[str, Optional[str]]] = None,
        competitor_handles: Optional[Dict[str, Optional[str]]] = None,
        force_refresh: bool = False,
        section: Optional[str] = None,
    ) -> AnalysisRequest:
        """
        Validate inputs and fill in handles the caller left out.

        Own handles come from the social-connection registry, competitor
        handles from the saved competitor; inline handles win.
        """
        identity = normalize_identity(identity or "")
        if not identity:
            raise InvalidRequestError("Caller identity is required")
        if not own_site or not competitor_site:
            raise InvalidRequestError("your_site and competitor_site are required")
        if normalize_domain(own_site) == normalize_domain(competitor_site):
            raise InvalidRequestError("your_site and competitor_site must differ")

        own = self.connections.get_handles(identity)
        own.update(_clean_handles(own_handles))

        competitor = self.competitors.get_handles(identity, normalize_domain(competitor_site))
        competitor.update(_clean_handles(competitor_handles))

        return AnalysisRequest(
            identity=identity,
            own_site=own_site,
            competitor_site=competitor_site,
            own_handles=own,
            competitor_handles=competitor,
            force_refresh=force_refresh,
            section=section,
        )

    # =========================================================================
    # Admission
    # =========================================================================

    async def _admit(self, request: AnalysisRequest):
        """Take the lock and charge the rate limit. Returns the held lock."""
        key = str(request.key)
        held = await self.lock.try_acquire(key)
        if not held.acquired:
            retry_after = held.retry_after(self.lock.stale_after_seconds)
            logger.info(f"Analysis already running for {key}, retry in {retry_after}s")
            raise AnalysisInProgress(
                "An analysis for this comparison is already in progress",
                retry_after=retry_after,
            )

        if not await self.rate_limiter.allow(request.identity):
            await self.lock.release(key, held.token)
            retry_after = await self.rate_limiter.retry_after(request.identity)
            logger.info(f"Rate limited {request.identity}, retry in {retry_after}s")
            raise RateLimited(
                f"Too many analyses. Limit is {self.rate_limiter.limit} per "
                f"{self.rate_limiter.window_seconds // 60:.0f} minutes",
                retry_after=retry_after,
            )
        return held

    def _check_competitor_limit(self, identity: str, domain: str, tier: PlanTier) -> None:
        limit = get_plan_features(tier)["competitors"]["max"]
        if limit < 0:
            return
        try:
            if self.competitors.exists(identity, domain):
                return
            usage = self.competitors.count(identity)
        except Exception as e:
            logger.error(f"Competitor limit check failed for {identity}, allowing: {e}")
            return
        if usage >= limit:
            upgrade = lowest_tier_with(lambda f: f["competitors"]["max"] > limit)
            logger.info(f"{identity} at competitor limit ({usage}/{limit}) on {tier.value}")
            raise CompetitorLimitReached(
                f"Your {tier.value} plan allows {limit} competitor(s)",
                plan=tier.value,
                limit=limit,
                usage=usage,
                upgrade_required=upgrade.value if upgrade else None,
            )

    # =========================================================================
    # Computation
    # =========================================================================

    async def _compute(self, request: AnalysisRequest) -> CompositeResult:
        """Full run with write-through. Prior cached sections stand in for failed ones."""
        prior = self.store.latest(request.key)
        result = await self.orchestrator.run(request, prior=prior)
        if not self.store.write(request.fingerprint, result):
            logger.warning(f"Result for {request.key} was not cached")
        return result

    def _needs_refresh_ahead(self, result: CompositeResult) -> bool:
        return result.expires_at - self._clock() < self.cache_config.refresh_ahead

    def _respond(self, result: CompositeResult, tier: PlanTier, cached: bool) -> Dict[str, Any]:
        body = filter_result(result, tier)
        body["success"] = True
        body["cached"] = cached
        return body

    # =========================================================================
    # Entrypoints
    # =========================================================================

    async def analyze(
        self,
        identity: str,
        own_site: str,
        competitor_site: str,
        own_handles: Optional[Dict[str, Optional[str]]] = None,
        competitor_handles: Optional[Dict[str, Optional[str]]] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """
        Full comparison, filtered for the caller's plan.

        Raises:
            InvalidRequestError, AnalysisInProgress, RateLimited,
            CompetitorLimitReached, AnalysisFailedError
        """
        request = self.build_request(
            identity, own_site, competitor_site, own_handles, competitor_handles, force_refresh,
        )
        key = str(request.key)
        held = await self._admit(request)
        refresh_ahead = False

        try:
            identity = request.identity
            tier = self.plans.get_tier(identity)
            self._check_competitor_limit(identity, request.key.competitor_domain, tier)

            if not request.force_refresh:
                cached = self.store.lookup(request.fingerprint)
                if cached is not None:
                    refresh_ahead = self._needs_refresh_ahead(cached)
                    return self._respond(cached, tier, cached=True)
            else:
                logger.info(f"Force refresh for {key}")

            result = await self._compute(request)
            self.competitors.save(identity, request.key.competitor_domain, request.competitor_handles)
            return self._respond(result, tier, cached=False)

        finally:
            await self.lock.release(key, held.token)
            if refresh_ahead and self.background is not None:
                self.background.submit(request)

    async def refresh_section(
        self,
        identity: str,
        own_site: str,
        competitor_site: str,
        section: str,
        own_handles: Optional[Dict[str, Optional[str]]] = None,
        competitor_handles: Optional[Dict[str, Optional[str]]] = None,
    ) -> Dict[str, Any]:
        """
        Re-run one refresh group over the cached report.

        Only the group's sections change; everything else is kept from the
        latest cached result for the pair, and the comparison is re-derived.
        With nothing cached this is a full analysis.
        """
        if section not in REFRESH_GROUPS:
            raise InvalidRequestError(
                f"Unknown section '{section}'. Expected one of: {', '.join(REFRESH_GROUPS)}"
            )
        request = self.build_request(
            identity, own_site, competitor_site, own_handles, competitor_handles, section=section,
        )
        key = str(request.key)
        held = await self._admit(request)

        try:
            identity = request.identity
            tier = self.plans.get_tier(identity)
            prior = self.store.latest(request.key)

            if prior is None:
                logger.info(f"Nothing cached for {key}, running full analysis instead of {section}")
                self._check_competitor_limit(identity, request.key.competitor_domain, tier)
                result = await self._compute(request)
                self.competitors.save(identity, request.key.competitor_domain, request.competitor_handles)
                body = self._respond(result, tier, cached=False)
                body["partial_refresh"] = False
                return body

            sections = REFRESH_GROUPS[section]
            if section != "social" and not self.orchestrator.resolve(request, sections):
                # Nothing to call; the cached report and its expiry stay as they are.
                logger.info(f"No providers for {section} on {key}, returning cached report")
                body = self._respond(prior, tier, cached=True)
                body["partial_refresh"] = False
                body["refreshed_sections"] = []
                return body

            outcomes = await self.orchestrator.fan_out(request, sections)
            updates, failures = section_updates(outcomes, request, prior, sections)

            patched = self.store.patch_sections(
                request.fingerprint, updates, failures, rebind_social=(section == "social"),
            )
            if patched is None:
                logger.warning(f"Patch of {section} for {key} not persisted, returning in-memory result")
                patched = apply_updates(
                    prior, updates, failures,
                    expires_at=self._clock() + self.cache_config.competitor_ttl,
                )

            body = self._respond(patched, tier, cached=False)
            body["partial_refresh"] = True
            body["refreshed_sections"] = list(sections)
            return body

        finally:
            await self.lock.release(key, held.token)

    async def refresh_in_background(self, request: AnalysisRequest) -> CompositeResult:
        """
        Background refresh job: full run under the analysis lock.

        Not rate limited and not plan filtered; the result only lands in
        the cache.
        """
        key = str(request.key)
        held = await self.lock.try_acquire(key)
        if not held.acquired:
            raise AnalysisInProgress(
                "Refresh skipped, analysis in progress",
                retry_after=held.retry_after(self.lock.stale_after_seconds),
            )
        try:
            return await self._compute(request)
        finally:
            await self.lock.release(key, held.token)

    def cache_status(self, identity: str, own_site: str, competitor_site: str) -> Dict[str, Any]:
        request = self.build_request(identity, own_site, competitor_site)
        return self.store.status(request.key)


def create_analysis_service(settings=None, session_factory=None) -> AnalysisService:
    """Wire an AnalysisService and its collaborators from Settings."""
    from competiscope.admission.store import create_admission_store
    from competiscope.cache.social_cache import SocialMetricsCache
    from competiscope.database.session import get_session_factory
    from competiscope.providers.registry import ProviderRegistry
    from competiscope.utils.config import get_settings

    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    cache_config = get_cache_config()
    admission_store = create_admission_store(settings)

    registry = ProviderRegistry(settings, social_cache=SocialMetricsCache(session_factory, cache_config))
    service = AnalysisService(
        store=CompetitorCacheStore(session_factory, cache_config),
        orchestrator=FanOutOrchestrator(registry, ttl=cache_config.competitor_ttl),
        rate_limiter=RateLimiter(
            admission_store,
            limit=settings.ANALYSIS_RATE_LIMIT,
            window_seconds=settings.ANALYSIS_RATE_WINDOW_SECONDS,
        ),
        lock=AnalysisLock(admission_store, stale_after_seconds=settings.ANALYSIS_LOCK_STALE_SECONDS),
        plans=PlanLookup(session_factory, cache_seconds=settings.PLAN_CACHE_SECONDS),
        connections=SocialConnectionRegistry(session_factory),
        competitors=SavedCompetitorStore(session_factory),
        cache_config=cache_config,
    )
    service.background = BackgroundRefreshQueue(service.refresh_in_background)
    return service
