"""
API v1 Router
"""

from fastapi import APIRouter

from board.api.v1 import users

router = APIRouter()

# Include all endpoint routers
router.include_router(users.router)

__all__ = ["router"]
