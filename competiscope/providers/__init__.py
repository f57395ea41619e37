"""Provider adapters: one per external data source."""

from .base import ProviderAdapter, ProviderTarget
from .client import ProviderError, ProviderHTTPClient, ProviderInputError, RetryConfig
from .registry import ProviderRegistry

__all__ = [
    "ProviderAdapter",
    "ProviderTarget",
    "ProviderError",
    "ProviderInputError",
    "ProviderHTTPClient",
    "RetryConfig",
    "ProviderRegistry",
]
