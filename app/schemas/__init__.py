"""Pydantic schemas for validation and serialization."""

from app.schemas.checkpoint import (
    AssemblyStage,
    AudioStage,
    Checkpoint,
    ImagesStage,
    ReviewStage,
    ScriptStage,
    TimingWindow,
    dump_checkpoint,
    load_checkpoint,
)
from app.schemas.job import GenerationJob, ResolvedProviderIds
from app.schemas.video import (
    PlatformPostResult,
    Scene,
    merge_posted_platforms,
    normalize_posted_platforms,
)

__all__ = [
    "AssemblyStage",
    "AudioStage",
    "Checkpoint",
    "GenerationJob",
    "ImagesStage",
    "PlatformPostResult",
    "ResolvedProviderIds",
    "ReviewStage",
    "Scene",
    "ScriptStage",
    "TimingWindow",
    "dump_checkpoint",
    "load_checkpoint",
    "merge_posted_platforms",
    "normalize_posted_platforms",
]
