"""
Provider Adapter Base

Every data source implements `_fetch(target) -> payload dict`. The public
`fetch` wraps it with the adapter's own timeout and converts anything that
goes wrong into a ProviderOutcome, so no provider error ever escapes an
adapter:
- asyncio timeout       -> TIMEOUT (retryable on the next refresh)
- ProviderInputError    -> FAILURE (not retryable: missing handle or key)
- any other exception   -> FAILURE (retryable if the provider said so)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from competiscope.analysis.models import OutcomeStatus, ProviderOutcome, Side
from .client import ProviderError, ProviderHTTPClient, ProviderInputError

logger = logging.getLogger(__name__)


@dataclass
class ProviderTarget:
    """What one adapter call is about."""
    identity: str
    side: Side
    domain: str
    handle: Optional[str] = None

    @property
    def url(self) -> str:
        return f"https://{self.domain}"


class ProviderAdapter:
    """Base class for provider adapters."""

    name: str = ""
    default_timeout: float = 30.0

    def __init__(self, client: ProviderHTTPClient, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout or self.default_timeout

    async def _fetch(self, target: ProviderTarget) -> Dict[str, Any]:
        raise NotImplementedError

    async def fetch(self, target: ProviderTarget) -> ProviderOutcome:
        start = time.monotonic()

        def elapsed() -> float:
            return (time.monotonic() - start) * 1000

        try:
            payload = await asyncio.wait_for(self._fetch(target), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} timed out for {target.domain} after {self.timeout}s")
            return ProviderOutcome(
                provider_name=self.name,
                side=target.side,
                status=OutcomeStatus.TIMEOUT,
                error=f"Timed out after {self.timeout:.0f}s",
                elapsed_ms=elapsed(),
                retryable=True,
            )
        except ProviderInputError as e:
            logger.info(f"{self.name} skipped for {target.domain}: {e}")
            return ProviderOutcome(
                provider_name=self.name,
                side=target.side,
                status=OutcomeStatus.FAILURE,
                error=str(e),
                elapsed_ms=elapsed(),
                retryable=False,
            )
        except ProviderError as e:
            logger.warning(f"{self.name} failed for {target.domain}: {e}")
            return ProviderOutcome(
                provider_name=self.name,
                side=target.side,
                status=OutcomeStatus.FAILURE,
                error=str(e),
                elapsed_ms=elapsed(),
                retryable=e.retryable,
            )
        except Exception as e:
            logger.warning(f"{self.name} raised for {target.domain}: {type(e).__name__}: {e}")
            return ProviderOutcome(
                provider_name=self.name,
                side=target.side,
                status=OutcomeStatus.FAILURE,
                error=f"{type(e).__name__}: {e}",
                elapsed_ms=elapsed(),
                retryable=True,
            )

        logger.info(f"{self.name} done for {target.domain} ({elapsed():.0f}ms)")
        return ProviderOutcome(
            provider_name=self.name,
            side=target.side,
            status=OutcomeStatus.SUCCESS,
            payload=payload,
            elapsed_ms=elapsed(),
        )
