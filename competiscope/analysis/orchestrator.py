"""
Fan-Out Orchestrator

Resolves which providers a request needs, runs them all concurrently and
waits for every one to settle. Each adapter owns its timeout; there is no
global deadline and one provider's failure never cancels its siblings.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from competiscope.providers.base import ProviderAdapter, ProviderTarget
from competiscope.providers.registry import ProviderRegistry
from .compositor import compose
from .models import (
    ADS, SITE_SECTIONS, AnalysisRequest, CompositeResult, OutcomeStatus,
    ProviderOutcome, Side, social_section,
)

logger = logging.getLogger(__name__)

Call = Tuple[ProviderAdapter, ProviderTarget]


class FanOutOrchestrator:
    """
    Usage:
        orchestrator = FanOutOrchestrator(registry)
        result = await orchestrator.run(request, prior=store.latest(request.key))
    """

    def __init__(self, registry: ProviderRegistry, ttl: timedelta = timedelta(days=7)):
        self.registry = registry
        self.ttl = ttl

    def resolve(self, request: AnalysisRequest, sections: Optional[Iterable[str]] = None) -> List[Call]:
        """
        Provider calls for a request.

        Site sections always run for both sides, social sections only for
        connected accounts, ads only for a competitor Facebook page when an
        ads provider is configured. `sections` narrows the set.
        """
        wanted = set(sections) if sections is not None else None
        key = request.key
        calls: List[Call] = []

        def add(section: str, side: Side, handle: Optional[str] = None):
            if wanted is not None and section not in wanted:
                return
            adapter = self.registry.adapter_for(section, side)
            if adapter is None:
                return
            domain = key.own_domain if side == Side.OWN else key.competitor_domain
            calls.append((adapter, ProviderTarget(
                identity=key.identity, side=side, domain=domain, handle=handle,
            )))

        for side in (Side.OWN, Side.COMPETITOR):
            for section in SITE_SECTIONS:
                add(section, side)
            for platform, handle in request.social_for(side).connected().items():
                add(social_section(platform), side, handle)

        facebook = request.competitor_social.handle("facebook")
        if facebook:
            add(ADS, Side.COMPETITOR, facebook)

        return calls

    async def fan_out(self, request: AnalysisRequest,
                      sections: Optional[Iterable[str]] = None) -> List[ProviderOutcome]:
        """Run every resolved provider and return all outcomes once all have settled."""
        calls = self.resolve(request, sections)
        logger.info(f"Fan-out for {request.key}: {len(calls)} provider calls")

        settled = await asyncio.gather(
            *(adapter.fetch(target) for adapter, target in calls),
            return_exceptions=True,
        )

        outcomes = []
        for (adapter, target), outcome in zip(calls, settled):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(f"{adapter.name} escaped its boundary: {outcome}")
                outcome = ProviderOutcome(
                    provider_name=adapter.name,
                    side=target.side,
                    status=OutcomeStatus.FAILURE,
                    error=str(outcome),
                    retryable=True,
                )
            level = logging.INFO if outcome.ok else logging.WARNING
            logger.log(
                level,
                f"  {outcome.provider_name} ({outcome.side.value}): "
                f"{outcome.status.value} in {outcome.elapsed_ms:.0f}ms"
                + (f" - {outcome.error}" if outcome.error else ""),
            )
            outcomes.append(outcome)

        failed = [o for o in outcomes if not o.ok]
        if failed:
            logger.warning(
                f"Partial failure for {request.key}: "
                f"{sorted({o.provider_name for o in failed})}"
            )
        return outcomes

    async def run(self, request: AnalysisRequest,
                  prior: Optional[CompositeResult] = None) -> CompositeResult:
        """
        Full analysis: fan out, then compose.

        Raises:
            AnalysisFailedError: every provider failed and `prior` has
                nothing to stand in
        """
        outcomes = await self.fan_out(request)
        return compose(outcomes, request, prior=prior, ttl=self.ttl)
