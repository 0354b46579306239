"""
Database models
"""

from board.models.user import UserBase, Users

__all__ = ["UserBase", "Users"]
