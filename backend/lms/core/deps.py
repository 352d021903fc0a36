"""
FastAPI dependencies for authentication and role checks.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.exceptions import ForbiddenError
from lms.core.security import decode_token
from lms.db.session import get_db
from lms.models.enums import UserRole
from lms.models.user import User

# Bearer scheme reading the Authorization header; a missing header is a 401
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Return the authenticated user.

    Decodes the bearer JWT and loads the user it names. Deactivated
    accounts are treated like unknown ones.

    Raises:
        HTTPException 401: Invalid or expired token, or unknown user
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    user_id: str | None = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    try:
        user_uuid = UUID(user_id)
    except ValueError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def require_staff(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Require a librarian or admin.

    Raises:
        ForbiddenError: Caller is a student
    """
    if not current_user.is_staff:
        raise ForbiddenError("Staff access required")
    return current_user


async def require_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Require an admin.

    Raises:
        ForbiddenError: Caller is not an admin
    """
    if current_user.role != UserRole.ADMIN:
        raise ForbiddenError("Admin access required")
    return current_user


# Aliases used by the endpoints
CurrentUser = Annotated[User, Depends(get_current_user)]
StaffUser = Annotated[User, Depends(require_staff)]
AdminUser = Annotated[User, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
