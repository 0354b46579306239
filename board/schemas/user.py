"""
Pydantic schemas for User endpoints
"""

import base64
import binascii
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from board.models.user import UserBase


class UserResponse(UserBase):
    """Schema for user response - what API returns"""

    user_id: int
    created_at: datetime | None = None
    blocked: bool = False
    admin: bool = False

    # Resolved by the avatar service from the storage backend, "" if no avatar
    avatar_url: str = ""

    model_config = {"from_attributes": True}


class AvatarResponse(BaseModel):
    """Current avatar of a user"""

    user_id: int
    avatar: str
    avatar_url: str


class AvatarUpload(BaseModel):
    """Avatar image sent as base64 in a JSON body"""

    avatar: str = Field(min_length=1)

    def decoded_size(self) -> int:
        """Upper bound of the decoded payload size, computed without decoding."""
        return len(self.avatar) * 3 // 4

    def decode(self) -> bytes:
        """Decode the payload.

        Raises:
            ValueError: Not valid base64
        """
        try:
            return base64.b64decode(self.avatar, validate=True)
        except binascii.Error as e:
            raise ValueError("invalid base64 data") from e


class NameUpdate(BaseModel):
    """Schema for setting a user's display name"""

    name: str = Field(min_length=1, max_length=64)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v
