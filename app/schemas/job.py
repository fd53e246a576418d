"""Generation job payload submitted to the worker queue.

A GenerationJob is fully resolved: providers, art-style prompt modifiers and
the character prompt are computed by the submitting service, so the worker
never re-reads series or user settings. Serialized as camelCase JSON.
"""

from uuid import UUID

from pydantic import Field

from app.schemas.video import CamelModel, Scene


class ResolvedProviderIds(CamelModel):
    llm: str
    tts: str
    image: str


class GenerationJob(CamelModel):
    """Job description for one generation run of a video.

    Attributes:
        video_id: Video to generate (also the queue dedupe key).
        series_id: Owning series.
        providers: Provider id per capability, resolved at submission time.
        art_style_prompt: Prompt modifier of the series art style.
        negative_prompt: Negative prompt of the series art style.
        scenes: Pre-supplied scenes; when present the worker skips script
            generation.
        script_text: Full narration matching scenes (optional).
        review_mode: Suspend in REVIEW after images instead of assembling.
    """

    video_id: UUID
    series_id: UUID
    providers: ResolvedProviderIds
    art_style: str
    art_style_prompt: str
    negative_prompt: str
    tone: str
    niche: str
    voice_id: str
    language: str
    duration: int = Field(gt=0)
    title: str | None = None
    music_path: str | None = None
    character_prompt: str | None = None
    scenes: list[Scene] | None = None
    script_text: str | None = None
    review_mode: bool = False

    def to_payload(self) -> bytes:
        """Encode as the UTF-8 JSON bytes stored in the queue."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode()
