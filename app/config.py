"""Configuration management for the orchestration layer.

This module provides centralized configuration loading from environment variables.
Required values are loaded lazily and cached.

The former admin-settings singleton row is replaced by AppSettings: an explicit
configuration object loaded once and cached until reload_app_settings() is
called. Routes receive it through the get_app_settings dependency, services
receive it as a constructor argument.

Environment Variables:
    DATABASE_URL: PostgreSQL connection URL (required for production)
    FERNET_KEY: Encryption key for social account tokens (required for publishing)
    PUBLIC_APP_URL: Public base URL serving /videos/* (Instagram needs a public URL)
    VIDEOS_ROOT: Directory holding per-video artifacts (default: "public/videos")
    DEFAULT_LLM_PROVIDER / DEFAULT_TTS_PROVIDER / DEFAULT_IMAGE_PROVIDER:
        System-wide provider fallbacks
    ENABLED_LLM_PROVIDERS / ENABLED_TTS_PROVIDERS / ENABLED_IMAGE_PROVIDERS:
        Comma-separated provider ids an admin exposes to users (empty = all)

Usage:
    from app.config import get_app_settings, get_database_url

    settings = get_app_settings()
    db_url = get_database_url()  # Raises if DATABASE_URL not set
"""

import os
from functools import lru_cache

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger(__name__)

# System-wide provider fallbacks, used when neither the series nor the user
# picked a provider for a capability.
FALLBACK_LLM_PROVIDER = "GEMINI_FLASH"
FALLBACK_TTS_PROVIDER = "GEMINI_TTS"
FALLBACK_IMAGE_PROVIDER = "GEMINI_IMAGEN"

# Permalink polling: first wait, then the wait before each later attempt.
DEFAULT_PERMALINK_ATTEMPTS = 3
DEFAULT_PERMALINK_FIRST_WAIT = 3.0
DEFAULT_PERMALINK_NEXT_WAIT = 5.0


@lru_cache
def get_database_url() -> str:
    """Get database URL from environment.

    Converts postgresql:// to postgresql+asyncpg:// for async SQLAlchemy.

    Returns:
        Database URL with asyncpg driver.

    Raises:
        ValueError: If DATABASE_URL not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ValueError("DATABASE_URL environment variable is required")

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


def _split_ids(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("invalid_float_setting", name=name, value=raw, using_default=default)
        return default


class AppSettings(BaseModel):
    """Runtime settings shared by routes and services.

    Attributes:
        public_app_url: Base URL under which /videos/{id}.mp4 is reachable.
        videos_root: Filesystem directory holding per-video artifacts.
        fallback_llm_provider: System fallback for the llm capability.
        fallback_tts_provider: System fallback for the tts capability.
        fallback_image_provider: System fallback for the image capability.
        enabled_llm_providers: Admin-enabled llm ids (empty means all).
        enabled_tts_providers: Admin-enabled tts ids (empty means all).
        enabled_image_providers: Admin-enabled image ids (empty means all).
        graph_api_version: Facebook/Instagram Graph API version segment.
        permalink_attempts: Number of permalink metadata polls.
        permalink_first_wait: Seconds to wait before the first poll.
        permalink_next_wait: Seconds to wait before each later poll.
    """

    model_config = {"frozen": True}

    public_app_url: str = "http://localhost:8000"
    videos_root: str = "public/videos"
    fallback_llm_provider: str = FALLBACK_LLM_PROVIDER
    fallback_tts_provider: str = FALLBACK_TTS_PROVIDER
    fallback_image_provider: str = FALLBACK_IMAGE_PROVIDER
    enabled_llm_providers: frozenset[str] = Field(default_factory=frozenset)
    enabled_tts_providers: frozenset[str] = Field(default_factory=frozenset)
    enabled_image_providers: frozenset[str] = Field(default_factory=frozenset)
    graph_api_version: str = "v21.0"
    permalink_attempts: int = DEFAULT_PERMALINK_ATTEMPTS
    permalink_first_wait: float = DEFAULT_PERMALINK_FIRST_WAIT
    permalink_next_wait: float = DEFAULT_PERMALINK_NEXT_WAIT

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Build settings from the current process environment."""
        return cls(
            public_app_url=os.getenv("PUBLIC_APP_URL", "http://localhost:8000").rstrip("/"),
            videos_root=os.getenv("VIDEOS_ROOT", "public/videos"),
            fallback_llm_provider=os.getenv("DEFAULT_LLM_PROVIDER", FALLBACK_LLM_PROVIDER),
            fallback_tts_provider=os.getenv("DEFAULT_TTS_PROVIDER", FALLBACK_TTS_PROVIDER),
            fallback_image_provider=os.getenv("DEFAULT_IMAGE_PROVIDER", FALLBACK_IMAGE_PROVIDER),
            enabled_llm_providers=_split_ids(os.getenv("ENABLED_LLM_PROVIDERS")),
            enabled_tts_providers=_split_ids(os.getenv("ENABLED_TTS_PROVIDERS")),
            enabled_image_providers=_split_ids(os.getenv("ENABLED_IMAGE_PROVIDERS")),
            graph_api_version=os.getenv("GRAPH_API_VERSION", "v21.0"),
            permalink_first_wait=_float_env(
                "PERMALINK_FIRST_WAIT_SECONDS", DEFAULT_PERMALINK_FIRST_WAIT
            ),
            permalink_next_wait=_float_env(
                "PERMALINK_NEXT_WAIT_SECONDS", DEFAULT_PERMALINK_NEXT_WAIT
            ),
        )


@lru_cache
def get_app_settings() -> AppSettings:
    """Get cached application settings (FastAPI dependency).

    Settings are loaded on first use and kept until reload_app_settings()
    invalidates the cache, e.g. after an admin changes enabled providers.
    """
    settings = AppSettings.from_env()
    log.info(
        "app_settings_loaded",
        fallback_llm=settings.fallback_llm_provider,
        fallback_tts=settings.fallback_tts_provider,
        fallback_image=settings.fallback_image_provider,
    )
    return settings


def reload_app_settings() -> AppSettings:
    """Drop the cached settings and load them again from the environment."""
    get_app_settings.cache_clear()
    return get_app_settings()
