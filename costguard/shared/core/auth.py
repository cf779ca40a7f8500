from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from costguard.models.user import User
from costguard.shared.core.config import get_settings
from costguard.shared.core.exceptions import AuthError
from costguard.shared.db.session import get_db

logger = structlog.get_logger()

# auto_error=False: missing header reaches get_current_user as None, answered with 401
security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """The authenticated caller, resolved from the bearer token and the users table."""
    user_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


def decode_jwt(token: str) -> dict:
    """
    Verify signature and expiry of an access token and return its claims.

    Raises:
        AuthError 401 if the token is expired, tampered with or malformed
    """
    settings = get_settings()

    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("jwt_expired")
        raise AuthError("Token has expired", code="token_expired") from e
    except jwt.InvalidTokenError as e:
        logger.warning("jwt_invalid", error=str(e))
        raise AuthError("Invalid token", code="invalid_token") from e


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    if credentials is None:
        raise AuthError("Not authenticated", code="not_authenticated")

    payload = decode_jwt(credentials.credentials)
    user_id = payload.get("sub") or payload.get("userId")
    if not user_id:
        raise AuthError("Invalid token payload", code="invalid_token")

    user = await db.get(User, str(user_id))
    if user is None or not user.is_active:
        raise AuthError("User not found or inactive", code="forbidden", status_code=403)

    request.state.user_id = user.user_id
    return CurrentUser(
        user_id=user.user_id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
    )
