"""
Database session management.

Persistence is optional: when DATABASE_URL is unset no engine is created
and ``get_db`` yields None, which the persistence endpoints turn into 503.

expire_on_commit=False keeps ORM instances usable after commit.
"""
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)

from conviction.core.config import settings


def create_engine(url: str) -> AsyncEngine:
    kwargs = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
    return create_async_engine(url, **kwargs)


engine: Optional[AsyncEngine] = create_engine(settings.DATABASE_URL) if settings.DATABASE_URL else None

async_session: Optional[async_sessionmaker] = (
    async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    if engine is not None else None
)


async def get_db() -> AsyncIterator[Optional[AsyncSession]]:
    """
    Dependency for FastAPI endpoints.
    Yields an async database session, or None when persistence is disabled.

    Usage in endpoint:
        @router.get("/endpoint")
        async def endpoint(db: Optional[AsyncSession] = Depends(get_db)):
            ...
    """
    if async_session is None:
        yield None
        return

    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
