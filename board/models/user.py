"""
SQLModel-based User models

UserBase (shared public fields)
    ├─> Users (database table, adds moderation fields)
    └─> UserResponse (API schema, defined in board/schemas)

The avatar pipeline only touches ``avatar`` (filename of the current avatar
asset, empty when the user has none) and reads ``name`` for letter avatars.
"""

from datetime import UTC, datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class UserBase(SQLModel):
    """
    Base model with shared public fields for Users.
    """

    name: str = Field(default="", max_length=64)

    # Filename of the current avatar asset under "avatars/", or ""
    avatar: str = Field(default="", max_length=255)


class Users(UserBase, table=True):
    """
    Database table for users.

    Internal fields (should NOT be editable via public API):
    - blocked: Blocked users cannot change their profile
    - admin: Admins can change any user's avatar
    """

    __tablename__ = "users"

    __table_args__ = (Index("name", "name"),)

    user_id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    blocked: bool = Field(default=False)
    admin: bool = Field(default=False)
