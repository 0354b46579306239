"""
Route protection.

`get_current_user_id` only checks the bearer token; `get_current_user`
additionally loads the user row and turns blocked users away. Routes that
change an avatar depend on the latter.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from board.core.database import get_db
from board.core.logging import bind_context
from board.core.security import verify_access_token
from board.models.user import Users

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> int:
    """
    User ID from the request's bearer token.

    Raises:
        HTTPException: 401 if the token is absent or not a valid access token
    """
    if credentials is None:
        raise _unauthorized("Authentication required")

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        raise _unauthorized("Could not validate credentials")

    bind_context(user_id=user_id)
    return user_id


async def get_current_user(
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Users:
    """
    The authenticated user's row.

    Raises:
        HTTPException: 401 if the user no longer exists, 403 if blocked
    """
    result = await db.execute(select(Users).where(Users.user_id == user_id))  # type: ignore[arg-type]
    user = result.scalar_one_or_none()

    if user is None:
        raise _unauthorized("User not found")

    if user.blocked:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is blocked")

    return user
