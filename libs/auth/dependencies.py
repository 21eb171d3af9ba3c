from datetime import timedelta
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now

settings = get_settings()
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

JWT_ALGORITHM = "HS256"
SERVICE_TOKEN_TTL = timedelta(minutes=5)


def _decode_user(token: str) -> AuthUser:
    payload = jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=[JWT_ALGORITHM],
        # Supabase tokens vary in aud between projects
        options={"verify_aud": False},
    )
    return AuthUser(**payload)


def _service_role_jwt(calling_service: str) -> str:
    """Short-lived service-role token for internal service-to-service calls."""
    now = utc_now()
    claims = {
        "sub": calling_service,
        "role": "service_role",
        "iat": int(now.timestamp()),
        "exp": int((now + SERVICE_TOKEN_TTL).timestamp()),
    }
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm=JWT_ALGORITHM)


async def get_current_user(
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthUser:
    """
    Validate the bearer JWT and return the authenticated user.
    """
    try:
        return _decode_user(token.credentials)
    except (JWTError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_optional_user(
    token: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(optional_security)
    ],
) -> Optional[AuthUser]:
    """Like get_current_user, but anonymous callers get None instead of 401."""
    if token is None:
        return None
    try:
        return _decode_user(token.credentials)
    except (JWTError, ValidationError):
        return None


async def require_admin(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
) -> AuthUser:
    """
    Admin endpoints are served to the admin dashboard backend, which calls
    with a service-role token.
    """
    if not current_user.is_service_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user
