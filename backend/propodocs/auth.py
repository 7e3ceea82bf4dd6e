"""
Propodocs Backend — Bearer Token Authentication
=================================================

What:  FastAPI dependency resolving `Authorization: Bearer <jwt>` to a user id.
How:   python-jose verifies signature and expiry with the configured secret
       and algorithm (HS256 by default). Tokens carry the user id as
       `userId` (issued by the main app) or the standard `sub` claim.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from jose import JWTError, jwt

from propodocs.config import settings
from propodocs.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.jwt_expire_minutes
    )
    payload = {"userId": user_id, "sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    """Raises JWTError for bad signature, expiry or malformed tokens."""
    if not settings.jwt_secret:
        raise JWTError("JWT secret is not configured")
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def user_id_from_token(token: str) -> Optional[int]:
    """The user id carried by a valid token, or None for any invalid one."""
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    raw = payload.get("userId", payload.get("sub"))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(request: Request) -> int:
    """
    Dependency for authenticated routes.

    Raises:
        AuthenticationError: header missing, token invalid/expired, or no user id
    """
    token = bearer_token(request)
    if token is None:
        raise AuthenticationError("Missing bearer token")

    user_id = user_id_from_token(token)
    if user_id is None:
        logger.info("Rejected invalid or expired token on %s", request.url.path)
        raise AuthenticationError("Invalid or expired token")

    request.state.user_id = user_id
    return user_id
