"""Shared utilities: settings and normalization helpers."""

from .config import Settings, get_settings
from .domains import normalize_domain, normalize_handle, normalize_identity

__all__ = [
    "Settings",
    "get_settings",
    "normalize_domain",
    "normalize_handle",
    "normalize_identity",
]
