"""Response schemas for series maintenance endpoints."""

from uuid import UUID

from app.schemas.video import CamelModel


class SeriesResetResponse(CamelModel):
    series_id: UUID
    reset_count: int


class SeriesDeleteResponse(CamelModel):
    series_id: UUID
    deleted: bool = True
    video_count: int
