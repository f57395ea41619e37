"""Caller identity resolution."""

from .config import AuthConfig, get_auth_config
from .jwt import JWTError, verify_token, identity_from_token
from .dependencies import get_current_identity

__all__ = [
    "AuthConfig",
    "get_auth_config",
    "JWTError",
    "verify_token",
    "identity_from_token",
    "get_current_identity",
]
