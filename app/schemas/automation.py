"""Pydantic schemas for automation endpoints.

AutomationUpdate is a partial update: only fields present in the request
body are applied (model_fields_set), so an explicit null provider override
clears it while an omitted one is left untouched.
"""

import re
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import Platform
from app.schemas.video import CamelModel

Frequency = Literal["daily", "every_other_day", "weekly"]

_POST_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class AutomationUpdate(CamelModel):
    """Body of PATCH /automations/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=1, max_length=200)
    niche: str | None = Field(default=None, min_length=1)
    art_style: str | None = Field(default=None, min_length=1)
    voice_id: str | None = None
    language: str | None = None
    tone: str | None = None
    duration: int | None = Field(default=None, ge=15, le=120)
    llm_provider: str | None = None
    tts_provider: str | None = None
    image_provider: str | None = None
    character_id: UUID | None = None
    target_platforms: list[Platform] | None = None
    enabled: bool | None = None
    include_ai_tags: bool | None = None
    frequency: Frequency | None = None
    post_times: list[str] | None = None
    timezone: str | None = Field(default=None, min_length=1)

    @field_validator("post_times", mode="before")
    @classmethod
    def validate_post_times(cls, v: list[str] | str | None) -> list[str] | None:
        """Accept a list or a comma-separated string of HH:MM times."""
        if v is None:
            return None
        items = v.split(",") if isinstance(v, str) else v
        times = [str(item).strip() for item in items if str(item).strip()]
        for t in times:
            if not _POST_TIME_PATTERN.match(t):
                raise ValueError(f"Each time must be HH:MM, got {t!r}")
        return times


class AutomationResponse(CamelModel):
    id: UUID
    name: str
    series_id: UUID | None = None
    enabled: bool
    frequency: str
    post_times: list[str]
    timezone: str
    target_platforms: list[str]
    last_run_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TriggerResponse(CamelModel):
    video_id: UUID
    series_id: UUID
    title: str | None = None


class StopAutomationResponse(BaseModel):
    stopped: bool = True
    cancelled_video_id: UUID | None = Field(default=None, serialization_alias="cancelledVideoId")
    message: str
