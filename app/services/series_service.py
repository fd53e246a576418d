"""Series deletion with on-disk artifact cleanup.

Deleting a series removes its videos' rows (ORM cascade) and each video's
assembled file and working directory under videos_root. Rows go first: if the
delete fails, no file has been touched. An automation bound to the series is
unbound (series_id set to NULL) and gets a fresh series on its next trigger.

Videos still in flight are deleted too; their worker notices on its next
progress write (NotFoundError) and abandons the job.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth import CurrentUser
from app.config import AppSettings, get_app_settings
from app.exceptions import NotFoundError
from app.models import Series
from app.services.permissions import ensure_owner
from app.utils.filesystem import remove_video_artifacts
from app.utils.logging import get_logger

log = get_logger(__name__)


async def delete_series(
    db: AsyncSession,
    series_id: uuid.UUID,
    actor: CurrentUser,
    settings: AppSettings | None = None,
) -> int:
    """Delete a series, its videos and their artifacts.

    Returns:
        Number of videos deleted.

    Raises:
        NotFoundError: Unknown series.
        AuthorizationError: Caller neither owns it nor is privileged.
    """
    settings = settings or get_app_settings()
    result = await db.execute(
        select(Series)
        .where(Series.id == series_id)
        .options(selectinload(Series.videos), selectinload(Series.automation))
    )
    series = result.scalar_one_or_none()
    if series is None:
        raise NotFoundError("series", series_id)
    ensure_owner(actor, series.user_id, "series")

    video_ids = [video.id for video in series.videos]
    if series.automation is not None:
        series.automation.series_id = None

    await db.delete(series)
    await db.flush()

    removed = 0
    for video_id in video_ids:
        removed += await remove_video_artifacts(settings.videos_root, video_id)

    log.info(
        "series_deleted",
        series_id=str(series_id),
        video_count=len(video_ids),
        artifacts_removed=removed,
    )
    return len(video_ids)
