"""
User record access used by the avatar service.

The avatar service only needs to read a user's name and current avatar
filename and to point the user at a new avatar file.
"""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from board.models.user import Users


class UserNotFoundError(LookupError):
    """Raised when no user record exists for the given ID."""

    def __init__(self, user_id: int):
        super().__init__(f"user {user_id} not found")
        self.user_id = user_id


@dataclass(frozen=True, slots=True)
class AvatarOwner:
    user_id: int
    name: str
    avatar: str


class HasAvatar(Protocol):
    avatar: str


class UserStore(Protocol):
    async def get_avatar_owner(self, user_id: int) -> AvatarOwner: ...

    async def set_avatar(self, user_id: int, filename: str) -> None: ...


class SQLUserStore:
    """UserStore backed by the users table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_avatar_owner(self, user_id: int) -> AvatarOwner:
        result = await self.db.execute(
            select(Users.name, Users.avatar).where(Users.user_id == user_id)  # type: ignore[arg-type]
        )
        row = result.one_or_none()
        if row is None:
            raise UserNotFoundError(user_id)
        return AvatarOwner(user_id=user_id, name=row.name, avatar=row.avatar)

    async def set_avatar(self, user_id: int, filename: str) -> None:
        result = await self.db.execute(
            update(Users).where(Users.user_id == user_id).values(avatar=filename)  # type: ignore[arg-type]
        )
        if result.rowcount == 0:
            raise UserNotFoundError(user_id)
        # The avatar record is the commit point of the pipeline
        await self.db.commit()
