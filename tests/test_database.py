"""Tests for database session management.

get_session owns the transaction boundary: services flush, the dependency
commits on success and rolls back on any exception.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import create_test_engine, get_session, get_session_factory


@pytest.fixture
def fake_session(monkeypatch):
    session = MagicMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()

    class _Factory:
        def __call__(self):
            return self

        async def __aenter__(self):
            return session

        async def __aexit__(self, *exc):
            return False

    monkeypatch.setattr("app.database.async_session_factory", _Factory())
    return session


@pytest.mark.asyncio
async def test_get_session_commits_on_success(fake_session):
    gen = get_session()
    session = await gen.__anext__()

    with pytest.raises(StopAsyncIteration):
        await gen.__anext__()

    assert session is fake_session
    fake_session.commit.assert_awaited_once()
    fake_session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_session_rolls_back_on_error(fake_session):
    gen = get_session()
    await gen.__anext__()

    with pytest.raises(ValueError, match="boom"):
        await gen.athrow(ValueError("boom"))

    fake_session.rollback.assert_awaited_once()
    fake_session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_session_requires_configuration(monkeypatch):
    monkeypatch.setattr("app.database.async_session_factory", None)

    with pytest.raises(RuntimeError, match="Database not configured"):
        await get_session().__anext__()


def test_get_session_factory_requires_configuration(monkeypatch):
    monkeypatch.setattr("app.database.async_session_factory", None)

    with pytest.raises(RuntimeError, match="Database not configured"):
        get_session_factory()


def test_get_session_factory_returns_configured_factory(fake_session):
    factory = get_session_factory()

    assert factory() is factory


@pytest.mark.asyncio
async def test_create_test_engine_creates_working_connection():
    engine, session_factory = create_test_engine()

    try:
        async with session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            assert result.scalar() == 1
    finally:
        await engine.dispose()
