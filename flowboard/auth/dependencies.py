"""
FastAPI dependencies for authentication.

This module provides dependency functions that can be used in route handlers to:
- Extract the caller's identity from a JWT (Authorization header or ``jwt`` cookie)
- Load the caller's user record when a handler needs the profile
- Restrict endpoints to global admins
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from flowboard.database import get_db
from flowboard.errors import Forbidden, Unauthenticated
from flowboard.models import User, UserRole
from flowboard.auth.security import AUTH_COOKIE_NAME, verify_token

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme; missing headers fall through to the cookie
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Verified caller identity, taken from the token claims as-is."""

    user_id: int
    is_admin: bool = False


def identity_from_token(token: Optional[str]) -> Identity:
    """
    Turn a bearer token into an Identity.

    Raises:
        Unauthenticated: token missing, invalid, expired, of the wrong type,
            or without a usable ``sub`` claim
    """
    if not token:
        logger.info("No authentication credentials provided")
        raise Unauthenticated("Not authenticated")

    payload = verify_token(token)
    if payload is None:
        raise Unauthenticated("Invalid or expired token")

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise Unauthenticated("Invalid token type. Use access token for API requests.")

    # Malformed sub claims are auth failures, not server errors
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.info(f"Invalid user_id format in token: {payload.get('sub')}")
        raise Unauthenticated("Invalid token payload")

    return Identity(user_id=user_id, is_admin=payload.get("role") == UserRole.admin.value)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    jwt_cookie: Optional[str] = Cookie(None, alias=AUTH_COOKIE_NAME),
) -> Identity:
    """
    Extract the caller's identity from the Authorization header, else the cookie.

    Example:
        @app.get("/api/protected")
        async def protected_route(identity: Identity = Depends(get_current_identity)):
            return {"user_id": identity.user_id}
    """
    token = credentials.credentials if credentials and credentials.credentials else jwt_cookie
    identity = identity_from_token(token)
    logger.debug(f"Authenticated user_id={identity.user_id} admin={identity.is_admin}")
    return identity


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> User:
    """Load the caller's user record; a token for a vanished user is a 401."""
    user = db.get(User, identity.user_id)
    if user is None:
        logger.info(f"User not found for id: {identity.user_id}")
        raise Unauthenticated("User not found")
    return user


async def get_current_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """
    Convenience dependency for admin-only endpoints.

    Example:
        @app.get("/api/users")
        def list_users(admin: Identity = Depends(get_current_admin)):
            pass
    """
    if not identity.is_admin:
        logger.info(f"Access denied: user {identity.user_id} is not an admin")
        raise Forbidden("Access denied. Required role: admin")
    return identity
