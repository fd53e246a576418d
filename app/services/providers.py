"""Generation provider capabilities and their registry.

The orchestration layer calls external AI vendors through three capability
interfaces and never implements them itself:

    ScriptGenerator.generate_script(params)                        → ScriptResult
    VoiceSynthesizer.synthesize_voice(text, voice_id, language)    → VoiceResult
    ImageGenerator.generate_images(prompts, style, negative)       → ImageResult

Implementations are registered by provider id (e.g. "GEMINI_FLASH") in a
ProviderRegistry. Outputs are accepted verbatim, except that an empty result
(no scenes, no audio, no images) is a hard failure raised as ProviderError.
Any exception a vendor raises is classified (see error_classifier) and
re-raised as ProviderError naming the provider.

Usage:
    registry = ProviderRegistry()
    registry.register_image("FLUX", FluxImageGenerator())

    images = await generate_images_checked(
        registry.image("FLUX"), prompts, style_modifier, negative_prompt, "FLUX"
    )
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import structlog

from app.exceptions import ConfigurationError, ProviderError
from app.schemas.video import Scene
from app.services.catalog import Capability, get_provider_catalog
from app.services.error_classifier import classify_message

log = structlog.get_logger(__name__)


@dataclass
class ScriptParams:
    """Inputs of a script generation request."""

    niche: str
    tone: str
    art_style: str
    duration: int
    language: str = "en"
    topic: str | None = None
    character_prompt: str | None = None


@dataclass
class ScriptResult:
    title: str
    full_script: str
    scenes: list[Scene] = field(default_factory=list)


@dataclass
class VoiceResult:
    audio_path: str
    duration_ms: int


@dataclass
class ImageResult:
    image_paths: list[str] = field(default_factory=list)


@runtime_checkable
class ScriptGenerator(Protocol):
    async def generate_script(self, params: ScriptParams) -> ScriptResult: ...


@runtime_checkable
class VoiceSynthesizer(Protocol):
    async def synthesize_voice(self, text: str, voice_id: str, language: str) -> VoiceResult: ...


@runtime_checkable
class ImageGenerator(Protocol):
    async def generate_images(
        self,
        prompts: Sequence[str],
        style_modifier: str,
        negative_prompt: str | None = None,
    ) -> ImageResult: ...


class ProviderRegistry:
    """Maps provider ids to capability implementations.

    Lookup of an unregistered id raises ConfigurationError: the id was
    resolved from stored settings, so the deployment lacks an implementation.
    """

    def __init__(self) -> None:
        self._scripts: dict[str, ScriptGenerator] = {}
        self._voices: dict[str, VoiceSynthesizer] = {}
        self._images: dict[str, ImageGenerator] = {}

    def register_script(self, provider_id: str, generator: ScriptGenerator) -> None:
        self._scripts[provider_id] = generator

    def register_voice(self, provider_id: str, synthesizer: VoiceSynthesizer) -> None:
        self._voices[provider_id] = synthesizer

    def register_image(self, provider_id: str, generator: ImageGenerator) -> None:
        self._images[provider_id] = generator

    def script(self, provider_id: str) -> ScriptGenerator:
        return self._lookup(self._scripts, provider_id, "llm")

    def voice(self, provider_id: str) -> VoiceSynthesizer:
        return self._lookup(self._voices, provider_id, "tts")

    def image(self, provider_id: str) -> ImageGenerator:
        return self._lookup(self._images, provider_id, "image")

    @staticmethod
    def _lookup(table: dict, provider_id: str, capability: str):
        try:
            return table[provider_id]
        except KeyError:
            log.error("provider_not_registered", provider=provider_id, capability=capability)
            raise ConfigurationError(
                f"No {capability} provider registered for id {provider_id!r}"
            ) from None


# Process-wide registry; deployments register vendor implementations at startup
provider_registry = ProviderRegistry()


def get_provider_registry() -> ProviderRegistry:
    """FastAPI dependency returning the process-wide registry."""
    return provider_registry


def vendor_error(error: Exception, provider_id: str, capability: Capability) -> ProviderError:
    """Classify an exception raised by a vendor call into a ProviderError."""
    names = {info.id: info.name for info in get_provider_catalog().for_capability(capability)}
    raw = str(error) or type(error).__name__
    log.warning(
        "provider_call_failed",
        provider=provider_id,
        capability=capability,
        error_type=type(error).__name__,
        error=raw[:200],
    )
    return ProviderError(
        classify_message(raw, names.get(provider_id, provider_id)), provider=provider_id
    )


async def generate_script_checked(
    generator: ScriptGenerator, params: ScriptParams, provider_id: str
) -> ScriptResult:
    """Call a script generator and reject a result without scenes."""
    try:
        result = await generator.generate_script(params)
    except ProviderError:
        raise
    except Exception as e:
        raise vendor_error(e, provider_id, "llm") from e
    if not result.scenes:
        raise ProviderError("Script generation returned no scenes", provider=provider_id)
    return result


async def generate_images_checked(
    generator: ImageGenerator,
    prompts: Sequence[str],
    style_modifier: str,
    negative_prompt: str | None,
    provider_id: str,
) -> ImageResult:
    """Call an image generator and reject a result without images."""
    try:
        result = await generator.generate_images(prompts, style_modifier, negative_prompt)
    except ProviderError:
        raise
    except Exception as e:
        raise vendor_error(e, provider_id, "image") from e
    if not result.image_paths:
        raise ProviderError("Image generation returned no images", provider=provider_id)
    return result
