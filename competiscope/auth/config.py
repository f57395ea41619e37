"""
Authentication Configuration

Settings for validating the bearer tokens that identify callers.
"""

import os
from functools import lru_cache

from pydantic_settings import BaseSettings


class AuthConfig(BaseSettings):
    """Authentication configuration loaded from environment."""

    # JWT Settings
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    jwks_url: str = ""

    # Set to False for local dev; callers then identify with X-Identity
    auth_enabled: bool = True
    dev_identity: str = "dev-user"

    class Config:
        env_prefix = ""
        extra = "ignore"

    @property
    def is_configured(self) -> bool:
        return bool(self.jwt_secret or self.jwks_url)


@lru_cache()
def get_auth_config() -> AuthConfig:
    """Get cached auth configuration."""
    return AuthConfig(
        jwt_secret=os.getenv("JWT_SECRET", ""),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_audience=os.getenv("JWT_AUDIENCE", "authenticated"),
        jwks_url=os.getenv("JWKS_URL", ""),
        auth_enabled=os.getenv("AUTH_ENABLED", "true").lower() == "true",
        dev_identity=os.getenv("DEV_IDENTITY", "dev-user"),
    )
