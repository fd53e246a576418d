"""Checkpoint schema for resumable video generation.

The checkpoint is the persisted progress record of one video's generation.
It is modelled as a tagged variant per stage so that invalid field
combinations (images without audio, timing count different from image count,
review without images) fail validation instead of reaching the database:

    ScriptStage    → script persisted, no media yet
    AudioStage     → narration audio synthesized (audioPath, durationMs)
    ImagesStage    → images generated for every slot
    ReviewStage    → images + audio waiting for human scene selection
    AssemblyStage  → scene selection done, final assembly requested

Storage Format:
    Stored in Video.checkpoint_data as a camelCase JSON object. The format is a
    superset of the untyped blob written by older workers: the same keys
    (imagePaths, imagePrompts, audioPath, durationMs, sceneTimings,
    expandedTimings, musicPath, completedStages, reviewMode) plus a "stage" tag.
    Blobs without a tag are classified on read by classify_legacy_stage().
    Unknown keys are preserved across a read/write cycle.

Usage:
    from app.schemas.checkpoint import dump_checkpoint, load_checkpoint

    checkpoint = load_checkpoint(video.checkpoint_data)
    if isinstance(checkpoint, ReviewStage):
        ...
    video.checkpoint_data = dump_checkpoint(checkpoint)
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

# Stage labels recorded in completedStages by the worker
COMPLETED_SCRIPT = "SCRIPT"
COMPLETED_TTS = "TTS"
COMPLETED_IMAGES = "IMAGES"


class TimingWindow(BaseModel):
    """Half-open playback window [start_ms, end_ms) of one image slot."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    start_ms: int = Field(ge=0)
    end_ms: int = Field(ge=0)

    @model_validator(mode="after")
    def validate_order(self) -> "TimingWindow":
        if self.end_ms < self.start_ms:
            raise ValueError(f"endMs ({self.end_ms}) precedes startMs ({self.start_ms})")
        return self

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


class _CheckpointBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    completed_stages: list[str] = Field(default_factory=list)
    music_path: str | None = None

    def has_completed(self, label: str) -> bool:
        return label in self.completed_stages


class ScriptStage(_CheckpointBase):
    """Script persisted; no media produced yet."""

    stage: Literal["SCRIPT"] = "SCRIPT"


class _AudioFields(_CheckpointBase):
    audio_path: str = Field(min_length=1)
    duration_ms: int = Field(gt=0)
    scene_timings: list[TimingWindow] = Field(default_factory=list)


class AudioStage(_AudioFields):
    """Narration audio synthesized; images not generated yet."""

    stage: Literal["AUDIO"] = "AUDIO"


class _ImageFields(_AudioFields):
    image_paths: list[str] = Field(min_length=1)
    image_prompts: list[str] = Field(default_factory=list)
    expanded_timings: list[TimingWindow] | None = None

    @property
    def timings(self) -> list[TimingWindow]:
        """Timings aligned with image_paths (expanded slots win over per-scene)."""
        if self.expanded_timings:
            return self.expanded_timings
        return self.scene_timings

    @model_validator(mode="after")
    def validate_parallel_arrays(self) -> "_ImageFields":
        image_count = len(self.image_paths)
        if self.image_prompts and len(self.image_prompts) != image_count:
            raise ValueError(
                f"imagePrompts has {len(self.image_prompts)} entries for {image_count} images"
            )
        timings = self.timings
        if timings and len(timings) != image_count:
            raise ValueError(
                f"Timing count {len(timings)} does not match image count {image_count}"
            )
        for previous, current in zip(timings, timings[1:]):
            if current.start_ms < previous.end_ms:
                raise ValueError("Timing windows overlap")
        return self


class ImagesStage(_ImageFields):
    """Images generated for every slot; assembly not reached yet."""

    stage: Literal["IMAGES"] = "IMAGES"


class ReviewStage(_ImageFields):
    """Suspended for human scene selection before final assembly."""

    stage: Literal["REVIEW"] = "REVIEW"
    review_mode: Literal[True] = True


class AssemblyStage(_ImageFields):
    """Scene selection applied; final assembly requested."""

    stage: Literal["ASSEMBLY"] = "ASSEMBLY"
    review_mode: Literal[False] = False


Checkpoint = Annotated[
    Union[ScriptStage, AudioStage, ImagesStage, ReviewStage, AssemblyStage],
    Field(discriminator="stage"),
]

_checkpoint_adapter: TypeAdapter[Checkpoint] = TypeAdapter(Checkpoint)


def classify_legacy_stage(data: dict[str, Any]) -> str:
    """Infer the stage tag of an untagged checkpoint blob.

    Args:
        data: Raw camelCase checkpoint dict without a "stage" key.

    Returns:
        Stage tag: "REVIEW" when reviewMode is true, "ASSEMBLY" when it is
        explicitly false, "IMAGES" when images exist, "AUDIO" when audio
        exists, otherwise "SCRIPT".
    """
    if data.get("imagePaths"):
        review_mode = data.get("reviewMode")
        if review_mode is True:
            return "REVIEW"
        if review_mode is False:
            return "ASSEMBLY"
        return "IMAGES"
    if data.get("audioPath"):
        return "AUDIO"
    return "SCRIPT"


def load_checkpoint(data: dict[str, Any] | None) -> Checkpoint | None:
    """Parse stored checkpoint data into its stage variant.

    Args:
        data: Value of Video.checkpoint_data (may be None or untagged).

    Returns:
        Parsed checkpoint, or None when no checkpoint is stored.

    Raises:
        pydantic.ValidationError: If the blob is an invalid field combination.
    """
    if not data:
        return None
    if "stage" not in data:
        data = {**data, "stage": classify_legacy_stage(data)}
    return _checkpoint_adapter.validate_python(data)


def dump_checkpoint(checkpoint: Checkpoint) -> dict[str, Any]:
    """Serialize a checkpoint to its camelCase storage form."""
    return checkpoint.model_dump(mode="json", by_alias=True, exclude_none=True)
