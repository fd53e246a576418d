"""Static lookup tables (providers, niches, art styles) loaded from YAML.

The YAML files under app/catalog/ are validated into Pydantic models once per
process. Lookups are pure id → record functions; unknown ids return None and
callers fall back to their own defaults.

Usage:
    from app.services.catalog import get_art_style, get_niche

    style = get_art_style(series.art_style)
    modifier = style.prompt_modifier if style else DEFAULT_ART_STYLE_PROMPT
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field

log = structlog.get_logger(__name__)

CATALOG_DIR = Path(__file__).resolve().parent.parent / "catalog"

Capability = Literal["llm", "tts", "image"]

DEFAULT_ART_STYLE_PROMPT = "cinematic, high quality"
DEFAULT_NEGATIVE_PROMPT = "low quality, blurry, watermark, text"
DEFAULT_CATEGORY_ID = "22"


class ProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    quality: str = "Good"
    env_var: str = ""


class ProviderCatalog(BaseModel):
    llm: list[ProviderInfo]
    tts: list[ProviderInfo]
    image: list[ProviderInfo]

    def for_capability(self, capability: Capability) -> list[ProviderInfo]:
        return getattr(self, capability)


class ArtStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    prompt_modifier: str
    negative_prompt: str


class Niche(BaseModel):
    """Niche defaults plus caption material used by app.services.captions."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    default_tone: str = "dramatic"
    default_art_style: str = "realistic"
    default_music: str | None = None
    category_id: str = DEFAULT_CATEGORY_ID
    hashtags: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    hook: str = ""
    engagement: str = ""
    cta: str = ""


def _load_yaml(filename: str) -> object:
    path = CATALOG_DIR / filename
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    log.debug("catalog_loaded", file=filename)
    return data


@lru_cache
def get_provider_catalog() -> ProviderCatalog:
    return ProviderCatalog.model_validate(_load_yaml("providers.yaml"))


@lru_cache
def _art_styles() -> dict[str, ArtStyle]:
    raw = _load_yaml("art_styles.yaml")
    styles = [ArtStyle.model_validate(item) for item in raw]  # type: ignore[union-attr]
    return {style.id: style for style in styles}


@lru_cache
def _niches() -> dict[str, Niche]:
    raw = _load_yaml("niches.yaml")
    niches = [Niche.model_validate(item) for item in raw]  # type: ignore[union-attr]
    return {niche.id: niche for niche in niches}


def get_art_style(art_style_id: str | None) -> ArtStyle | None:
    """Look up an art style by id (None if unknown)."""
    if not art_style_id:
        return None
    return _art_styles().get(art_style_id)


def get_niche(niche_id: str | None) -> Niche | None:
    """Look up a niche by id (None if unknown)."""
    if not niche_id:
        return None
    return _niches().get(niche_id)


def art_style_prompts(art_style_id: str | None) -> tuple[str, str]:
    """Return (prompt_modifier, negative_prompt) with generic fallbacks."""
    style = get_art_style(art_style_id)
    if style is None:
        return DEFAULT_ART_STYLE_PROMPT, DEFAULT_NEGATIVE_PROMPT
    return style.prompt_modifier, style.negative_prompt
