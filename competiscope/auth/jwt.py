"""
JWT Token Validation

Resolves a bearer token to the caller's stable identity (the `sub`
claim). HS* tokens are checked against JWT_SECRET; asymmetric tokens
against the key published at JWKS_URL.
"""

import logging
from functools import lru_cache
from typing import Any, Dict

import jwt
from jwt import PyJWKClient, PyJWTError

from competiscope.auth.config import AuthConfig, get_auth_config

logger = logging.getLogger(__name__)

ASYMMETRIC_ALGORITHMS = {"RS256", "RS384", "RS512", "ES256", "ES384", "ES512", "PS256", "PS384", "PS512"}


class JWTError(Exception):
    """Token missing, malformed, expired or not verifiable."""
    pass


@lru_cache(maxsize=1)
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    """Get cached JWKS client for fetching public keys."""
    return PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)


def get_verification_key(token: str, config: AuthConfig) -> Any:
    if config.jwt_algorithm in ASYMMETRIC_ALGORITHMS:
        if not config.jwks_url:
            raise JWTError(f"JWKS_URL required for {config.jwt_algorithm} algorithm")
        try:
            return get_jwks_client(config.jwks_url).get_signing_key_from_jwt(token).key
        except PyJWTError as e:
            logger.error(f"Failed to fetch JWKS from {config.jwks_url}: {e}")
            raise JWTError(f"Failed to fetch public key: {e}")

    if not config.jwt_secret:
        raise JWTError("JWT_SECRET not configured")
    return config.jwt_secret


def verify_token(token: str, config: AuthConfig = None) -> Dict[str, Any]:
    """
    Verify and decode a bearer token.

    Raises:
        JWTError: If token is invalid, expired, or lacks a subject
    """
    config = config or get_auth_config()

    try:
        payload = jwt.decode(
            token,
            get_verification_key(token, config),
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise JWTError("Token has expired")
    except jwt.InvalidAudienceError:
        raise JWTError("Invalid token audience")
    except jwt.InvalidSignatureError:
        raise JWTError("Invalid token signature")
    except jwt.DecodeError as e:
        raise JWTError(f"Token decode error: {e}")
    except PyJWTError as e:
        raise JWTError(f"Token validation error: {e}")

    if not payload.get("sub"):
        raise JWTError("Token missing 'sub' claim")
    return payload


def identity_from_token(token: str, config: AuthConfig = None) -> str:
    """Stable caller identity for a verified token."""
    return str(verify_token(token, config)["sub"])
