"""
Authentication Tests

Tests for bearer-token identity resolution.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

import jwt
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from competiscope.auth.config import AuthConfig
from competiscope.auth.dependencies import get_current_identity
from competiscope.auth.jwt import JWTError, identity_from_token, verify_token


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def auth_config():
    """Create test auth config."""
    return AuthConfig(
        jwt_secret="super-secret-jwt-key-for-testing-only",
        jwt_algorithm="HS256",
        jwt_audience="authenticated",
        auth_enabled=True,
    )


@pytest.fixture
def valid_jwt_payload():
    """Create valid JWT payload."""
    return {
        "sub": "user-123",
        "aud": "authenticated",
        "exp": int((datetime.utcnow() + timedelta(hours=1)).timestamp()),
        "iat": int(datetime.utcnow().timestamp()),
    }


@pytest.fixture
def create_test_token(auth_config):
    """Factory to create test JWT tokens."""
    def _create(payload: dict, secret: str = None) -> str:
        return jwt.encode(
            payload,
            secret or auth_config.jwt_secret,
            algorithm=auth_config.jwt_algorithm,
        )
    return _create


# =============================================================================
# JWT VALIDATION TESTS
# =============================================================================

class TestJWTValidation:
    """Tests for JWT token validation."""

    def test_valid_token(self, auth_config, valid_jwt_payload, create_test_token):
        """Test that a valid token is accepted."""
        with patch("competiscope.auth.jwt.get_auth_config", return_value=auth_config):
            payload = verify_token(create_test_token(valid_jwt_payload))
        assert payload["sub"] == "user-123"

    def test_expired_token(self, auth_config, valid_jwt_payload, create_test_token):
        """Test that an expired token is rejected."""
        valid_jwt_payload["exp"] = int((datetime.utcnow() - timedelta(hours=1)).timestamp())
        with pytest.raises(JWTError, match="expired"):
            verify_token(create_test_token(valid_jwt_payload), auth_config)

    def test_invalid_signature(self, auth_config, valid_jwt_payload, create_test_token):
        """Test that a token signed with another secret is rejected."""
        token = create_test_token(valid_jwt_payload, secret="another-secret-of-sufficient-length")
        with pytest.raises(JWTError, match="signature"):
            verify_token(token, auth_config)

    def test_missing_sub_claim(self, auth_config, valid_jwt_payload, create_test_token):
        """Test that a token without a subject is rejected."""
        del valid_jwt_payload["sub"]
        with pytest.raises(JWTError, match="sub"):
            verify_token(create_test_token(valid_jwt_payload), auth_config)

    def test_invalid_audience(self, auth_config, valid_jwt_payload, create_test_token):
        """Test that a token for another audience is rejected."""
        valid_jwt_payload["aud"] = "someone-else"
        with pytest.raises(JWTError, match="audience"):
            verify_token(create_test_token(valid_jwt_payload), auth_config)

    def test_garbage_token(self, auth_config):
        with pytest.raises(JWTError, match="decode"):
            verify_token("not-a-jwt", auth_config)

    def test_no_jwt_secret_configured(self, valid_jwt_payload, create_test_token):
        """Test that validation fails without a secret."""
        with pytest.raises(JWTError, match="JWT_SECRET"):
            verify_token(create_test_token(valid_jwt_payload), AuthConfig(jwt_secret=""))

    def test_asymmetric_requires_jwks(self, valid_jwt_payload, create_test_token):
        config = AuthConfig(jwt_algorithm="RS256", jwks_url="")
        with pytest.raises(JWTError, match="JWKS_URL"):
            verify_token(create_test_token(valid_jwt_payload), config)

    def test_identity_is_subject(self, auth_config, valid_jwt_payload, create_test_token):
        assert identity_from_token(create_test_token(valid_jwt_payload), auth_config) == "user-123"


# =============================================================================
# DEPENDENCY TESTS
# =============================================================================

class TestGetCurrentIdentity:
    """FastAPI identity dependency."""

    @pytest.mark.asyncio
    async def test_bearer_token(self, auth_config, valid_jwt_payload, create_test_token):
        credentials = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=create_test_token(valid_jwt_payload),
        )
        with patch("competiscope.auth.dependencies.get_auth_config", return_value=auth_config):
            assert await get_current_identity(credentials, None) == "user-123"

    @pytest.mark.asyncio
    async def test_missing_credentials(self, auth_config):
        with patch("competiscope.auth.dependencies.get_auth_config", return_value=auth_config):
            with pytest.raises(HTTPException) as exc:
                await get_current_identity(None, None)
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self, auth_config):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="bad")
        with patch("competiscope.auth.dependencies.get_auth_config", return_value=auth_config):
            with pytest.raises(HTTPException) as exc:
                await get_current_identity(credentials, None)
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_auth_disabled_uses_header(self):
        config = AuthConfig(auth_enabled=False, dev_identity="dev")
        with patch("competiscope.auth.dependencies.get_auth_config", return_value=config):
            assert await get_current_identity(None, "user-9") == "user-9"
            assert await get_current_identity(None, None) == "dev"


# =============================================================================
# CONFIG TESTS
# =============================================================================

class TestAuthConfig:
    """Tests for AuthConfig."""

    def test_is_configured_true(self, auth_config):
        assert auth_config.is_configured is True

    def test_is_configured_with_jwks(self):
        assert AuthConfig(jwt_secret="", jwks_url="https://issuer.test/.well-known/jwks.json").is_configured

    def test_is_configured_false(self):
        assert AuthConfig(jwt_secret="", jwks_url="").is_configured is False
