"""
Result Compositor

Merges provider outcomes into the two-sided report. Every successful
payload is validated against its section schema first; a section that
has neither a valid new payload nor a usable prior value becomes an
explicit unavailable marker. The comparison is always re-derived from
the merged sides.
"""

import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from competiscope.utils.domains import normalize_handle
from .comparison import generate_comparison
from .errors import AnalysisFailedError
from .models import (
    SITE_SECTIONS, SOCIAL_SECTIONS, AnalysisRequest, CompositeResult,
    OutcomeStatus, ProviderOutcome, Side, is_unavailable, section_platform, unavailable,
)
from .payloads import validate_payload

logger = logging.getLogger(__name__)

NOT_CONNECTED = "No account connected"


def _checked(outcome: ProviderOutcome) -> ProviderOutcome:
    """Validate a successful outcome's payload; an invalid payload becomes a failure."""
    if not outcome.ok:
        return outcome
    try:
        payload = validate_payload(outcome.section, outcome.payload or {})
    except (KeyError, ValidationError) as e:
        logger.warning(f"Invalid {outcome.section} payload for {outcome.side.value}: {e}")
        return ProviderOutcome(
            provider_name=outcome.provider_name,
            side=outcome.side,
            status=OutcomeStatus.FAILURE,
            error=f"Invalid payload: {e}",
            elapsed_ms=outcome.elapsed_ms,
            retryable=True,
        )
    return ProviderOutcome(
        provider_name=outcome.provider_name,
        side=outcome.side,
        status=outcome.status,
        payload=payload,
        elapsed_ms=outcome.elapsed_ms,
    )


def _prior_value(
    prior: Optional[CompositeResult],
    request: AnalysisRequest,
    section: str,
    side: Side,
) -> Optional[Any]:
    """
    A prior section value usable as a stand-in, or None.

    A prior social section only stands in for the same account.
    """
    if prior is None:
        return None
    value = prior.side(side).get(section)
    if is_unavailable(value):
        return None
    platform = section_platform(section)
    if platform:
        wanted = request.social_for(side).handle(platform)
        if wanted is None or normalize_handle(value.get("handle")) != wanted:
            return None
    return value


def _resolve(
    outcome: ProviderOutcome,
    prior: Optional[CompositeResult],
    request: AnalysisRequest,
) -> Any:
    if outcome.ok:
        return outcome.payload
    fallback = _prior_value(prior, request, outcome.section, outcome.side)
    if fallback is not None:
        logger.info(f"Keeping prior {outcome.section} ({outcome.side.value}) after {outcome.status.value}")
        return fallback
    return unavailable(outcome.error or "Provider failed", outcome.status.value)


def compose(
    outcomes: Iterable[ProviderOutcome],
    request: AnalysisRequest,
    prior: Optional[CompositeResult] = None,
    ttl: timedelta = timedelta(days=7),
    now: Optional[datetime] = None,
) -> CompositeResult:
    """
    Build a full CompositeResult from one fan-out.

    Site sections appear on both sides; social sections appear on both
    sides, unavailable where no account is connected; ads appear on the
    competitor side when an ads outcome exists.

    Raises:
        AnalysisFailedError: every provider failed and no prior value
            stood in for any section
    """
    outcomes = [_checked(o) for o in outcomes]
    now = now or datetime.utcnow()

    result = CompositeResult(
        own_domain=request.key.own_domain,
        competitor_domain=request.key.competitor_domain,
        created_at=now,
        expires_at=now + ttl,
    )

    for side in (Side.OWN, Side.COMPETITOR):
        sections = result.side(side)
        for section in SITE_SECTIONS:
            sections[section] = unavailable("Not requested")
        for section in SOCIAL_SECTIONS:
            sections[section] = unavailable(NOT_CONNECTED)

    for outcome in outcomes:
        result.side(outcome.side)[outcome.section] = _resolve(outcome, prior, request)

    failed = [o for o in outcomes if not o.ok]
    result.failures = [o.failure_dict() for o in failed]
    result.failed_providers = sorted({o.provider_name for o in failed})
    result.partial_failure = bool(failed)

    if outcomes and not any(o.ok for o in outcomes) and not result.has_usable_data():
        logger.error(f"All {len(outcomes)} providers failed for {request.key}")
        raise AnalysisFailedError(
            "All data providers failed and no cached data is available",
            failures=result.failures,
        )

    result.comparison = generate_comparison(result.own_side, result.competitor_side)
    return result


def section_updates(
    outcomes: Iterable[ProviderOutcome],
    request: AnalysisRequest,
    prior: CompositeResult,
    sections: Tuple[str, ...],
) -> Tuple[Dict[str, Dict[Side, Any]], List[Dict[str, Any]]]:
    """
    Per-section replacements for a partial refresh of `prior`.

    A successful outcome replaces the section; a failed one keeps the
    prior value (or marks the section unavailable if there is none).
    Social sections in `sections` with no outcome on a side are marked
    not connected. Returns (updates, failure records).
    """
    outcomes = [_checked(o) for o in outcomes]
    updates: Dict[str, Dict[Side, Any]] = {}

    for outcome in outcomes:
        updates.setdefault(outcome.section, {})[outcome.side] = _resolve(outcome, prior, request)

    for section in sections:
        if section_platform(section) is None:
            continue
        for side in (Side.OWN, Side.COMPETITOR):
            if side not in updates.get(section, {}):
                updates.setdefault(section, {})[side] = unavailable(NOT_CONNECTED)

    failures = [o.failure_dict() for o in outcomes if not o.ok]
    return updates, failures


def apply_updates(
    prior: CompositeResult,
    updates: Dict[str, Dict[Side, Any]],
    failures: Optional[List[Dict[str, Any]]] = None,
    expires_at: Optional[datetime] = None,
) -> CompositeResult:
    """
    New CompositeResult with `updates` applied over a copy of `prior`.

    Only the named (section, side) values change. Failure records for the
    touched sections are replaced by `failures`, and the comparison is
    re-derived. `prior` is not modified.
    """
    failures = failures or []
    result = CompositeResult.from_dict(copy.deepcopy(prior.to_dict()))
    for section, sides in updates.items():
        for side, value in sides.items():
            result.side(side)[section] = value

    touched = set(updates) | {f["provider"] for f in failures}
    result.failures = [f for f in result.failures if f["provider"] not in touched] + list(failures)
    result.failed_providers = sorted({f["provider"] for f in result.failures})
    result.partial_failure = bool(result.failures)
    result.comparison = generate_comparison(result.own_side, result.competitor_side)
    if expires_at is not None:
        result.expires_at = expires_at
    return result
