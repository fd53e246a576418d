"""Pydantic schemas for video lifecycle requests and persisted JSON columns.

This module defines:
    - Scene: one narration + visual description unit (Video.scenes_json)
    - PlatformPostResult: one publish outcome entry (Video.posted_platforms)
    - Request bodies for the lifecycle endpoints (assemble, regenerate-image,
      publish, reset-posted, update-link)
    - VideoResponse: serialized video state returned by lifecycle endpoints

posted_platforms Normalization:
    Older rows store bare platform strings ("YOUTUBE") next to structured
    entries. normalize_posted_platforms() converts both forms into
    PlatformPostResult at the read boundary, so no caller branches on type.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.models import Platform, Video, VideoStatus

log = structlog.get_logger(__name__)


class CamelModel(BaseModel):
    """Base for models whose wire/storage form uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Scene(CamelModel):
    """One narration + visual description pair from a generated script."""

    text: str
    visual_description: str = ""


class PlatformPostResult(CamelModel):
    """Outcome of one platform publish attempt (or manual link).

    Attributes:
        platform: Destination platform.
        success: Whether the post exists on the platform.
        post_id: Platform post id (None for manual links and failures).
        url: Public URL of the post.
        error: Classified error message on failure.
        manual_url: True when the URL was supplied by a user, not the orchestrator.
    """

    platform: Platform
    success: bool
    post_id: str | None = None
    url: str | None = None
    error: str | None = None
    manual_url: bool = False

    def to_storage(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if not self.manual_url:
            data.pop("manualUrl", None)
        return data


def normalize_posted_platforms(raw: list[Any] | None) -> list[PlatformPostResult]:
    """Convert stored posted_platforms (legacy strings or dicts) to entries.

    Legacy string entries become successful entries without post id or URL.
    Entries naming an unknown platform are dropped with a warning. When the
    same platform appears more than once, the last entry wins and keeps the
    position of the first.

    Args:
        raw: Value of Video.posted_platforms.

    Returns:
        One PlatformPostResult per platform, in stored order.
    """
    by_platform: dict[Platform, PlatformPostResult] = {}
    for item in raw or []:
        try:
            if isinstance(item, str):
                entry = PlatformPostResult(platform=Platform(item), success=True)
            else:
                data = dict(item)
                # Legacy structured entries omit success when the post went through
                data.setdefault("success", True)
                entry = PlatformPostResult.model_validate(data)
        except (ValueError, TypeError, ValidationError):
            log.warning("posted_platform_entry_dropped", entry=repr(item)[:200])
            continue
        by_platform[entry.platform] = entry
    return list(by_platform.values())


def merge_posted_platforms(
    existing: list[PlatformPostResult],
    updates: list[PlatformPostResult],
) -> list[PlatformPostResult]:
    """Upsert entries keyed by platform (replace in place, append new ones)."""
    merged = {entry.platform: entry for entry in existing}
    for entry in updates:
        merged[entry.platform] = entry
    return list(merged.values())


def posted_platforms_to_storage(entries: list[PlatformPostResult]) -> list[dict[str, Any]]:
    return [entry.to_storage() for entry in entries]


class AssembleRequest(CamelModel):
    """Body of POST /videos/{id}/assemble.

    selected_indices narrows the reviewed images to a subset (any order,
    duplicates ignored). None or empty keeps every image.
    """

    selected_indices: list[int] | None = None


class RegenerateImageRequest(CamelModel):
    """Body of POST /videos/{id}/regenerate-image."""

    index: int = Field(ge=0)
    prompt: str = Field(min_length=1)

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt must not be blank")
        return v.strip()


class PublishRequest(CamelModel):
    """Body of POST /videos/{id}/publish. platforms=None uses the automation's targets."""

    platforms: list[Platform] | None = None


class ResetPostedRequest(CamelModel):
    """Body of POST /videos/{id}/reset-posted. platforms=None or [] clears all."""

    platforms: list[Platform] | None = None


class UpdateLinkRequest(CamelModel):
    """Body of POST /videos/{id}/update-link."""

    platform: Platform
    url: str = Field(min_length=1)


class RegenerateImageResponse(CamelModel):
    index: int
    image_path: str
    prompt: str


class VideoResponse(CamelModel):
    """Serialized video state returned by lifecycle endpoints."""

    id: UUID
    series_id: UUID
    status: VideoStatus
    generation_stage: str | None = None
    title: str | None = None
    video_url: str | None = None
    error_message: str | None = None
    posted_platforms: list[PlatformPostResult] = Field(default_factory=list)
    updated_at: datetime | None = None

    @classmethod
    def from_video(cls, video: Video) -> "VideoResponse":
        return cls(
            id=video.id,
            series_id=video.series_id,
            status=video.status,
            generation_stage=video.generation_stage,
            title=video.title,
            video_url=video.video_url,
            error_message=video.error_message,
            posted_platforms=normalize_posted_platforms(video.posted_platforms),
            updated_at=video.updated_at,
        )


class PublishAccepted(CamelModel):
    """202 body: publish continues in the background."""

    video_id: UUID
    platforms: list[Platform]
    status: str = "accepted"


class PublishResponse(CamelModel):
    """Body of a synchronous publish (wait=true)."""

    video: VideoResponse
    results: list[PlatformPostResult]
