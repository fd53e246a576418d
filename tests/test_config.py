"""Tests for app/config.py configuration module.

This module tests:
- DATABASE_URL loading and driver rewriting
- AppSettings defaults and environment overrides
- Settings cache invalidation

Priority: P1 - Configuration is critical for all services.
"""

import pytest

from app.config import (
    FALLBACK_IMAGE_PROVIDER,
    FALLBACK_LLM_PROVIDER,
    FALLBACK_TTS_PROVIDER,
    AppSettings,
    get_app_settings,
    get_database_url,
    reload_app_settings,
)


@pytest.fixture(autouse=True)
def clear_caches():
    get_database_url.cache_clear()
    get_app_settings.cache_clear()
    yield
    get_database_url.cache_clear()
    get_app_settings.cache_clear()


class TestGetDatabaseUrl:
    def test_p1_rewrites_postgresql_scheme(self, monkeypatch: pytest.MonkeyPatch):
        """[P1] postgresql:// gets the asyncpg driver for async SQLAlchemy."""
        # GIVEN: A plain PostgreSQL URL
        monkeypatch.setenv("DATABASE_URL", "postgresql://user:pass@db:5432/videos")

        # WHEN / THEN
        assert get_database_url() == "postgresql+asyncpg://user:pass@db:5432/videos"

    def test_p1_keeps_explicit_driver(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user@db/videos")

        assert get_database_url() == "postgresql+asyncpg://user@db/videos"

    def test_p1_raises_when_missing(self, monkeypatch: pytest.MonkeyPatch):
        """[P1] Missing DATABASE_URL is a configuration error at first use."""
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(ValueError, match="DATABASE_URL environment variable is required"):
            get_database_url()


class TestAppSettings:
    def test_p1_defaults(self, monkeypatch: pytest.MonkeyPatch):
        """[P1] Without environment overrides the system fallbacks apply."""
        for name in (
            "PUBLIC_APP_URL",
            "VIDEOS_ROOT",
            "DEFAULT_LLM_PROVIDER",
            "DEFAULT_TTS_PROVIDER",
            "DEFAULT_IMAGE_PROVIDER",
            "ENABLED_LLM_PROVIDERS",
            "PERMALINK_FIRST_WAIT_SECONDS",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = AppSettings.from_env()

        assert settings.public_app_url == "http://localhost:8000"
        assert settings.videos_root == "public/videos"
        assert settings.fallback_llm_provider == FALLBACK_LLM_PROVIDER
        assert settings.fallback_tts_provider == FALLBACK_TTS_PROVIDER
        assert settings.fallback_image_provider == FALLBACK_IMAGE_PROVIDER
        assert settings.enabled_llm_providers == frozenset()
        assert settings.permalink_attempts == 3
        assert settings.permalink_first_wait == 3.0
        assert settings.permalink_next_wait == 5.0

    def test_p2_environment_overrides(self, monkeypatch: pytest.MonkeyPatch):
        # GIVEN: Overrides including a trailing slash and spaced id list
        monkeypatch.setenv("PUBLIC_APP_URL", "https://videos.example.com/")
        monkeypatch.setenv("DEFAULT_TTS_PROVIDER", "ELEVENLABS")
        monkeypatch.setenv("ENABLED_IMAGE_PROVIDERS", " GEMINI_IMAGEN , FLUX ,,")
        monkeypatch.setenv("PERMALINK_NEXT_WAIT_SECONDS", "1.5")

        # WHEN
        settings = AppSettings.from_env()

        # THEN
        assert settings.public_app_url == "https://videos.example.com"
        assert settings.fallback_tts_provider == "ELEVENLABS"
        assert settings.enabled_image_providers == frozenset({"GEMINI_IMAGEN", "FLUX"})
        assert settings.permalink_next_wait == 1.5

    def test_p2_invalid_float_uses_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PERMALINK_FIRST_WAIT_SECONDS", "soon")

        assert AppSettings.from_env().permalink_first_wait == 3.0

    def test_p2_settings_are_frozen(self):
        settings = AppSettings()

        with pytest.raises(ValueError):
            settings.videos_root = "/tmp"  # type: ignore[misc]


class TestSettingsCache:
    def test_p1_cached_until_reload(self, monkeypatch: pytest.MonkeyPatch):
        """[P1] Enabled-provider changes apply after reload_app_settings()."""
        monkeypatch.setenv("ENABLED_LLM_PROVIDERS", "GEMINI_FLASH")
        first = get_app_settings()

        monkeypatch.setenv("ENABLED_LLM_PROVIDERS", "GEMINI_FLASH,OPENAI")

        assert get_app_settings() is first
        reloaded = reload_app_settings()
        assert reloaded.enabled_llm_providers == frozenset({"GEMINI_FLASH", "OPENAI"})
