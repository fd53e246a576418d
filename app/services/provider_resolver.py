"""Provider resolution per generation capability.

For each capability (llm, tts, image) the provider id is chosen as:
    1. explicit override (series or automation column), when not None
    2. the owning user's saved default, when not None
    3. the system fallback from AppSettings

Resolution is pure: no I/O and no check against the admin-enabled sets.
Those sets only filter what users are offered (list_selectable_providers).
Every generation entry point (trigger, retry, assemble, regenerate-image)
resolves again instead of reusing a stored result, since user defaults and
overrides change independently of queued work.
"""

from dataclasses import dataclass
from typing import Protocol

from app.config import AppSettings, get_app_settings
from app.services.catalog import Capability, ProviderInfo, get_provider_catalog


class ProviderOverrides(Protocol):
    llm_provider: str | None
    tts_provider: str | None
    image_provider: str | None


class ProviderDefaults(Protocol):
    default_llm_provider: str | None
    default_tts_provider: str | None
    default_image_provider: str | None


@dataclass(frozen=True)
class ResolvedProviders:
    llm: str
    tts: str
    image: str


def resolve_providers(
    overrides: ProviderOverrides | None,
    user: ProviderDefaults | None,
    settings: AppSettings | None = None,
) -> ResolvedProviders:
    """Resolve the provider id for every capability.

    Args:
        overrides: Object carrying llm/tts/image_provider overrides
            (a Series or Automation), or None.
        user: Object carrying default_*_provider values (the owning User), or None.
        settings: Settings holding the system fallbacks. Defaults to the
            cached application settings.

    Returns:
        ResolvedProviders with a non-empty id per capability.

    Example:
        >>> resolve_providers(series, user).tts
        'ELEVENLABS'
    """
    settings = settings or get_app_settings()

    def pick(override: str | None, default: str | None, fallback: str) -> str:
        if override is not None:
            return override
        if default is not None:
            return default
        return fallback

    return ResolvedProviders(
        llm=pick(
            overrides.llm_provider if overrides else None,
            user.default_llm_provider if user else None,
            settings.fallback_llm_provider,
        ),
        tts=pick(
            overrides.tts_provider if overrides else None,
            user.default_tts_provider if user else None,
            settings.fallback_tts_provider,
        ),
        image=pick(
            overrides.image_provider if overrides else None,
            user.default_image_provider if user else None,
            settings.fallback_image_provider,
        ),
    )


def list_selectable_providers(
    capability: Capability,
    settings: AppSettings | None = None,
) -> list[ProviderInfo]:
    """Providers a user may pick for a capability.

    Filters the catalog by the admin-enabled set for that capability. An empty
    enabled set means every catalog entry is offered.
    """
    settings = settings or get_app_settings()
    enabled = {
        "llm": settings.enabled_llm_providers,
        "tts": settings.enabled_tts_providers,
        "image": settings.enabled_image_providers,
    }[capability]
    providers = get_provider_catalog().for_capability(capability)
    if not enabled:
        return list(providers)
    return [p for p in providers if p.id in enabled]
