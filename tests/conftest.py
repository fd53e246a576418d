"""Shared pytest fixtures for async database testing.

This module provides reusable fixtures for testing SQLAlchemy models and the
lifecycle services using an in-memory SQLite database, mocks for the job
queue and the generation providers, and a TestClient for route tests.
"""

import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import CurrentUser
from app.config import AppSettings, get_app_settings
from app.database import create_test_engine
from app.main import app
from app.models import Base
from app.queue import get_job_queue
from app.schemas.video import Scene
from app.services.providers import (
    ImageResult,
    ProviderRegistry,
    ScriptResult,
    get_provider_registry,
)
from app.utils.encryption import EncryptionService
from tests.support.factories import create_series, create_user, persist


@pytest.fixture
def valid_fernet_key() -> str:
    """Generate a valid Fernet key for testing."""
    return Fernet.generate_key().decode()


@pytest.fixture(autouse=False)
def encryption_env(valid_fernet_key: str, monkeypatch: pytest.MonkeyPatch):
    """Set up encryption environment for tests.

    Sets FERNET_KEY environment variable and resets the
    EncryptionService singleton before and after the test.
    """
    EncryptionService.reset_instance()
    monkeypatch.setenv("FERNET_KEY", valid_fernet_key)
    yield valid_fernet_key
    EncryptionService.reset_instance()


@pytest_asyncio.fixture
async def async_engine():
    """Create an in-memory SQLite engine with all tables.

    Yields:
        tuple: (engine, session_factory) from app.database.create_test_engine.
    """
    engine, session_factory = create_test_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine, session_factory

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    """Create an async session for testing.

    Uses expire_on_commit=False to match production configuration.

    Yields:
        AsyncSession: Database session for test operations.
    """
    _, session_factory = async_engine

    async with session_factory() as session:
        yield session


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    """Settings with a temporary videos root and no permalink waits."""
    return AppSettings(
        public_app_url="https://app.example.com",
        videos_root=str(tmp_path / "videos"),
        permalink_first_wait=0,
        permalink_next_wait=0,
    )


@pytest.fixture
def mock_job_queue() -> AsyncMock:
    """JobQueue stand-in; assert on mock_job_queue.submit."""
    queue = AsyncMock()
    queue.submit = AsyncMock(return_value=None)
    return queue


@pytest.fixture
def generated_script() -> ScriptResult:
    return ScriptResult(
        title="The Door at the End of the Hall",
        full_script=(
            "[Scene 1]\nThe door was never locked. Tonight it was open.\n\n"
            "[Scene 2]\nSomething breathed behind it."
        ),
        scenes=[
            Scene(
                text="The door was never locked. Tonight it was open.",
                visual_description="an old wooden door ajar in a dark hallway",
            ),
            Scene(
                text="Something breathed behind it.",
                visual_description="darkness behind a half-open door",
            ),
        ],
    )


@pytest.fixture
def script_generator(generated_script) -> AsyncMock:
    generator = AsyncMock()
    generator.generate_script = AsyncMock(return_value=generated_script)
    return generator


@pytest.fixture
def image_generator() -> AsyncMock:
    generator = AsyncMock()
    generator.generate_images = AsyncMock(
        return_value=ImageResult(image_paths=["/videos/work/scene_regenerated.png"])
    )
    return generator


@pytest.fixture
def provider_registry(settings, script_generator, image_generator) -> ProviderRegistry:
    """Registry with mock generators under the system fallback ids."""
    registry = ProviderRegistry()
    registry.register_script(settings.fallback_llm_provider, script_generator)
    registry.register_voice(settings.fallback_tts_provider, AsyncMock())
    registry.register_image(settings.fallback_image_provider, image_generator)
    return registry


@pytest_asyncio.fixture
async def owner(async_session):
    """Persisted FREE-plan user owning the test records."""
    user = create_user()
    await persist(async_session, user)
    return user


@pytest_asyncio.fixture
async def series(async_session, owner):
    """Persisted series owned by `owner`."""
    record = create_series(owner)
    await persist(async_session, record)
    return record


@pytest.fixture
def actor(owner) -> CurrentUser:
    """Caller identity of `owner`."""
    return CurrentUser(id=owner.id, role=owner.role, plan=owner.plan)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.UUID("0b5d6a52-7c1e-4f4e-9d1a-3c2b1a0f9e88")


@pytest.fixture
def auth_headers(user_id) -> dict[str, str]:
    """Identity headers set by the upstream gateway."""
    return {"X-User-Id": str(user_id), "X-User-Role": "USER", "X-User-Plan": "FREE"}


@pytest.fixture
def mock_db_session() -> MagicMock:
    """Request session stand-in for route tests (services are patched)."""
    session = MagicMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def api_client(settings, provider_registry, mock_job_queue, mock_db_session, monkeypatch):
    """TestClient with database, queue, registry and settings overridden.

    Route tests patch the service functions. The real get_session still owns
    commit and rollback, and the real get_current_user parses the identity
    headers.
    """

    @asynccontextmanager
    async def _session_factory():
        yield mock_db_session

    monkeypatch.setattr("app.database.async_session_factory", _session_factory)
    app.dependency_overrides[get_job_queue] = lambda: mock_job_queue
    app.dependency_overrides[get_provider_registry] = lambda: provider_registry
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
