"""
Notarium Backend — Request Dependencies
=========================================

What:  FastAPI dependencies that authenticate the caller.
How:   Bearer token → JWT claims → User row, then the suspension gate.

    get_current_user         every protected route; 403 while suspended
    get_current_user_lenient GET /api/auth/me only, so a suspended student
                             can still load the suspension page
    require_admin            admin routes; 403 for students

Role is taken from the database row, not from the token, so promotions and
demotions apply to tokens that were issued earlier.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.database import get_db_session
from notarium.exceptions import AuthenticationError, PermissionDeniedError
from notarium.models.user import User
from notarium.security import decode_access_token
from notarium.services.user_service import user_service


async def get_token_from_request(
    authorization: Annotated[Optional[str], Header()] = None,
) -> str:
    """Extracts the token from `Authorization: Bearer <token>`."""
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    raise AuthenticationError(message="Unauthorized - No token provided")


async def _load_user(token: str, db: AsyncSession) -> User:
    claims = decode_access_token(token)
    if claims is None:
        raise AuthenticationError(message="Invalid or expired token")

    user = await db.get(User, claims["sub"])
    if user is None:
        raise AuthenticationError(message="Invalid or expired token")
    return user


async def get_current_user_lenient(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> User:
    """Authenticated user; expired suspensions are cleared, active ones allowed."""
    user = await _load_user(token, db)
    user_service.refresh_suspension(user)
    return user


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> User:
    """
    Authenticated, non-suspended user.

    Raises:
        AuthenticationError (401): missing/invalid token or deleted user
        AccountSuspendedError (403): active suspension
    """
    user = await _load_user(token, db)
    user_service.ensure_not_suspended(user)
    return user


async def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    if not user.is_admin:
        raise PermissionDeniedError(message="Unauthorized - Admin access required")
    return user


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentUser = Annotated[User, Depends(get_current_user)]
LenientUser = Annotated[User, Depends(get_current_user_lenient)]
AdminUser = Annotated[User, Depends(require_admin)]
