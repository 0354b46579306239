"""
Service dependencies for API endpoints.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from board.core.database import get_db
from board.services.avatar import AvatarService
from board.services.user_store import SQLUserStore
from board.storage import FileStorage, get_file_storage


def get_storage() -> FileStorage:
    """File storage backend selected by STORAGE_TYPE."""
    return get_file_storage()


async def get_avatar_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    file_storage: Annotated[FileStorage, Depends(get_storage)],
) -> AvatarService:
    """Avatar service bound to the request's database session."""
    return AvatarService(SQLUserStore(db), file_storage)
