"""
Pydantic schemas for API responses and requests
"""
from board.models.user import UserBase  # Re-export from models
from board.schemas.user import AvatarResponse, AvatarUpload, NameUpdate, UserResponse

__all__ = [
    "AvatarResponse",
    "AvatarUpload",
    "NameUpdate",
    "UserBase",
    "UserResponse",
]
