"""
Provider HTTP Client

Shared async HTTP client for every provider adapter:
- Connection pooling across adapters
- Automatic retry with exponential backoff on 429/5xx and network errors
- ProviderError carrying status code, response body and retryability
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 8.0
    exponential_base: float = 2.0
    retryable_status_codes: tuple = (429, 500, 502, 503, 504)


class ProviderError(Exception):
    """Error talking to an external data provider."""

    def __init__(
        self,
        message: str,
        status_code: int = None,
        response: Any = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response
        self.retryable = retryable


class ProviderInputError(ProviderError):
    """The request lacks what the provider needs (no handle, no API key)."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class ProviderHTTPClient:
    """
    Async HTTP client with retry.

    Usage:
        client = ProviderHTTPClient()
        data = await client.get_json("https://api.example.com/v1/thing", params={...})
        await client.close()
    """

    USER_AGENT = "Mozilla/5.0 (compatible; CompetiscopeBot/0.1; +https://competiscope.app/bot)"

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        max_connections: int = 50,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self._client = httpx.AsyncClient(
            headers={"User-Agent": self.USER_AGENT},
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections // 2,
            ),
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )
        self._closed = False

    async def get_json(self, url: str, params: Dict[str, Any] = None,
                       headers: Dict[str, str] = None) -> Any:
        response = await self._request_with_retry("GET", url, params=params, headers=headers)
        return response.json()

    async def post_json(self, url: str, payload: Any, params: Dict[str, Any] = None) -> Any:
        response = await self._request_with_retry("POST", url, params=params, json=payload)
        return response.json()

    async def get(self, url: str, allow_status: tuple = ()) -> httpx.Response:
        """
        GET returning the raw response.

        Status codes in allow_status (e.g. 404 for robots.txt probes) are
        returned instead of raised.
        """
        return await self._request_with_retry("GET", url, allow_status=allow_status)

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        allow_status: tuple = (),
        **kwargs,
    ) -> httpx.Response:
        """Make request with retry logic."""
        if self._closed:
            raise ProviderError("Client has been closed", retryable=False)

        config = self.retry_config
        last_exception = None

        for attempt in range(config.max_retries + 1):
            try:
                response = await self._client.request(method, url, **kwargs)

                if response.status_code < 400 or response.status_code in allow_status:
                    return response

                error_data = response.text[:500] if response.content else ""
                if response.status_code in config.retryable_status_codes:
                    last_exception = ProviderError(
                        f"API error: {response.status_code}",
                        status_code=response.status_code,
                        response=error_data,
                    )
                else:
                    raise ProviderError(
                        f"API error: {response.status_code}",
                        status_code=response.status_code,
                        response=error_data,
                        retryable=False,
                    )

            except httpx.TimeoutException as e:
                last_exception = ProviderError(f"Request timed out: {e}")
            except httpx.RequestError as e:
                last_exception = ProviderError(f"Request failed: {e}")

            if attempt < config.max_retries:
                delay = min(
                    config.initial_delay * (config.exponential_base ** attempt),
                    config.max_delay,
                )
                logger.warning(
                    f"Provider request to {url} failed, retrying in {delay:.1f}s "
                    f"(attempt {attempt + 1}/{config.max_retries + 1})"
                )
                await asyncio.sleep(delay)

        raise last_exception

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
