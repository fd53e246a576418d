"""Async SQLAlchemy engine, session factory and request-scoped sessions.

The engine is built at import time when DATABASE_URL is set; otherwise it is
left unset and tests install their own factory (see create_test_engine).

Usage:
    from app.database import get_session

    async def stop(video_id: UUID, db: AsyncSession = Depends(get_session)):
        video = await db.get(Video, video_id)
        ...
"""

import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.config import get_database_url

# Unset during test collection
_database_url = os.getenv("DATABASE_URL")

if _database_url:
    engine: AsyncEngine | None = create_async_engine(
        get_database_url(),
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,
        echo=os.getenv("DATABASE_ECHO", "").lower() == "true",
    )
else:
    # No database configured; get_session raises until a factory is installed
    engine = None


async_session_factory: async_sessionmaker[AsyncSession] | None = (
    async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # responses serialize ORM objects after commit
    )
    if engine
    else None
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database session injection.

    Yields an async database session with automatic commit on success
    and rollback on exception. Services only flush; this dependency owns
    the transaction boundary, so a domain error raised mid-request leaves
    no partial writes behind.

    Yields:
        AsyncSession: Database session for the request.

    Raises:
        RuntimeError: If database is not configured.
    """
    if async_session_factory is None:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency for work that outlives the request (background tasks).

    Raises:
        RuntimeError: If database is not configured.
    """
    if async_session_factory is None:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")
    return async_session_factory


def create_test_engine(
    database_url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an engine and session factory for tests.

    In-memory SQLite gets a StaticPool so every session shares one
    connection (and therefore one database). The partial unique index on
    in-flight videos is created through its sqlite_where clause.

    Returns:
        Tuple of (engine, session_factory).
    """
    options: dict = {"echo": False}
    if database_url.endswith(":memory:"):
        options["poolclass"] = StaticPool
    test_engine = create_async_engine(database_url, **options)
    test_session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return test_engine, test_session_factory
