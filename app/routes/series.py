"""Series maintenance routes.

- POST /api/v1/series/{id}/reset-posted - Clear publish outcomes on every video
- DELETE /api/v1/series/{id} - Delete the series, its videos and their files
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import CurrentUser, get_current_user
from app.config import AppSettings, get_app_settings
from app.database import get_session
from app.schemas.series import SeriesDeleteResponse, SeriesResetResponse
from app.services import series_service, video_service

router = APIRouter(prefix="/api/v1/series", tags=["series"])


@router.post("/{series_id}/reset-posted", response_model=SeriesResetResponse)
async def reset_series_posted(
    series_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SeriesResetResponse:
    count = await video_service.reset_series_posted(db, series_id, user)
    return SeriesResetResponse(series_id=series_id, reset_count=count)


@router.delete("/{series_id}", response_model=SeriesDeleteResponse)
async def delete_series(
    series_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    settings: AppSettings = Depends(get_app_settings),
) -> SeriesDeleteResponse:
    count = await series_service.delete_series(db, series_id, user, settings)
    return SeriesDeleteResponse(series_id=series_id, video_count=count)
