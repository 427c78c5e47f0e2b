# app/db/session.py
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker

from app.core.config import settings


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build the async engine; pool sizing only applies to server databases
    """
    options = {"echo": echo, "future": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_pre_ping=True,  # Verify connections before using
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    return create_async_engine(database_url, **options)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_from_url(settings.DATABASE_URL, echo=settings.LOG_LEVEL == "DEBUG")

AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency function that provides a database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
