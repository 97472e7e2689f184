"""
API dependencies for FastAPI dependency injection.

Provides common dependencies like database sessions, the clock and
authentication.
"""
from datetime import datetime
from typing import Callable
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt import InvalidTokenError
from sqlalchemy.orm import Session

from arena.api.middleware.error_handler import ForbiddenException
from arena.lib.db import get_db as get_db_session
from arena.lib.jwt import get_user_from_token
from arena.lib.timeutils import utc_now
from arena.models.users import User


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer()


def get_clock() -> Callable[[], datetime]:
    """Current-time source for services. Overridden in tests."""
    return utc_now


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get current authenticated user from JWT token.

    Raises:
        HTTPException: 401 if token invalid or user not found
    """
    try:
        user_id, _role = get_user_from_token(credentials.credentials)
        user_uuid = UUID(user_id)
    except (InvalidTokenError, KeyError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Could not validate credentials: {str(e)}",
        )

    user = db.get(User, user_uuid)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


def require_staff(user: User = Depends(get_current_user)) -> User:
    """Only managers and admins pass."""
    if not user.role.is_staff:
        raise ForbiddenException("Staff access required")
    return user
