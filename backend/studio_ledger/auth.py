"""
Bearer token authentication.

Tokens are issued by the external auth provider; this module only verifies
them and reads the user id from the ``sub`` claim.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from jwt import PyJWTError

from .core.config import settings
from .core.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for ``user_id``.

    Used by local tooling and tests; production tokens come from the auth provider.
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=12))
    to_encode: Dict[str, Any] = {"sub": user_id, "exp": expire}
    return jwt.encode(
        to_encode, settings.secret_key.get_secret_value(), algorithm=settings.algorithm
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        settings.secret_key.get_secret_value(),
        algorithms=[settings.algorithm],
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    Dependency returning the authenticated user id.

    Raises:
        HTTPException: 401 ``not_authenticated`` when the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException().to_http_exception()

    try:
        payload = decode_access_token(credentials.credentials)
    except PyJWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        raise UnauthorizedException("Could not validate credentials").to_http_exception()

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        logger.warning("Token payload missing 'sub' field")
        raise UnauthorizedException("Could not validate credentials").to_http_exception()
    return user_id
