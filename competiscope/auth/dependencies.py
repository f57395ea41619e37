"""
FastAPI Authentication Dependencies
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from competiscope.auth.config import get_auth_config
from competiscope.auth.jwt import JWTError, identity_from_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_identity: Optional[str] = Header(default=None),
) -> str:
    """
    Caller identity from the bearer token.

    With auth disabled (local dev) the X-Identity header, or the
    configured dev identity, is trusted instead.

    Raises:
        HTTPException 401: If not authenticated
    """
    config = get_auth_config()

    if not config.auth_enabled:
        return x_identity or config.dev_identity

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return identity_from_token(credentials.credentials, config)
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
