"""
Bearer-token authentication.

Tokens are issued by the identity provider and signed with the shared
SECRET_KEY. The `sub` claim is the stable account identifier that users
are stored under.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.config import get_settings
from tourbook.core.exceptions import Forbidden, Unauthorized
from tourbook.core.logging import get_logger
from tourbook.db.session import get_db
from tourbook.models.user import User
from tourbook.services.user_service import get_user_by_identifier

settings = get_settings()
logger = get_logger(__name__)

LEEWAY_SECONDS = 30

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "iat": now})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"require": ["exp", "sub"]},
            leeway=LEEWAY_SECONDS,
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Your session has expired. Please log in again") from None
    except jwt.InvalidTokenError as e:
        logger.warning("token_rejected", reason=str(e))
        raise Unauthorized("Invalid authentication token") from None
    return claims


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise Unauthorized()
    return decode_token(credentials.credentials)


async def get_current_user(
    claims: dict = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The stored user behind the bearer token. Accounts must be synced first."""
    user = await get_user_by_identifier(db, claims["sub"])
    if user is None:
        raise Unauthorized("User not found. Please sync your account")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        logger.warning("admin_access_denied", user_id=user.id)
        raise Forbidden("Admin access required")
    return user
