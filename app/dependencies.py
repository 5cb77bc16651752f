"""
FastAPI dependencies for authentication and authorization.

Dependencies form a chain that enforces authentication, role and status:

  get_current_user (JWT -> User)
      ├── get_current_member (User -> User)          [MEMBER role]
      │       └── get_transacting_member             [MEMBER, not blocked]
      └── require_admin (User -> User)               [ADMIN role]

Role-based access control:
  - MEMBER: Can only access their own accounts and data. Read endpoints use
    get_current_member; every endpoint that moves money uses
    get_transacting_member, which also rejects BLOCKED users.
  - ADMIN: Uses the /admin/* endpoints only. Admins cannot initiate
    transfers or bill payments; their ledger changes go through the admin
    correction tools, which are audited.
"""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import AccountBlockedError
from app.models.user import User, UserStatus, UserType
from app.security import decode_access_token


# Reads the "Authorization: Bearer <token>" header; tokenUrl is used by
# Swagger UI's "Authorize" button.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def get_current_member(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require a MEMBER user for the member banking endpoints.

    Raises:
        HTTPException 403: If the user is an admin.
    """
    if user.user_type == UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin accounts cannot access member banking endpoints. "
                   "Use /admin/* endpoints instead.",
        )
    return user


async def get_transacting_member(
    user: User = Depends(get_current_member),
) -> User:
    """
    Require a member who is allowed to move money.

    Raises:
        AccountBlockedError: If the user has been blocked by an admin.
    """
    if user.status == UserStatus.BLOCKED:
        raise AccountBlockedError()
    return user


async def require_admin(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to have the ADMIN role.

    Raises:
        HTTPException 403: If the user is not an admin.
    """
    if user.user_type != UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
