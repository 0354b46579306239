"""
Async SQLAlchemy engine and per-request sessions.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from board.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_recycle=3600,  # MySQL drops idle connections after wait_timeout
)

# Objects stay readable after commit; the avatar routes build responses
# from the user row after the avatar record has been committed
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One session per request, committed when the request succeeds.

    Usage in FastAPI:
        @router.get("/users/{user_id}/avatar")
        async def get_user_avatar(db: Annotated[AsyncSession, Depends(get_db)]):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
