"""Worker progress API: stage labels, checkpoints and terminal states.

Generation workers report back through these functions instead of writing
Video rows directly, so that every write goes through the state machine and
the cooperative-cancellation check.

Cooperative Cancellation:
    Stopping a video only marks the row FAILED with "Stopped by user". Each
    write here first re-reads the row; if it was stopped (or otherwise left
    QUEUED/GENERATING) the write is refused with CancelledVideoError and the
    worker should abandon the job.

Usage:
    await record_stage(db, video_id, GenerationStage.TTS)
    await save_checkpoint(db, video_id, AudioStage(audio_path=..., duration_ms=...))
    await enter_review(db, video_id, review_checkpoint)
    await mark_ready(db, video_id)
"""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import CancelledVideoError, NotFoundError
from app.models import GenerationStage, Video, VideoStatus
from app.schemas.checkpoint import Checkpoint, ReviewStage, dump_checkpoint
from app.services.video_service import STALE_VIDEO_MESSAGE, flush_or_conflict
from app.utils.filesystem import public_video_url
from app.utils.logging import get_logger

log = get_logger(__name__)


async def _load_active(db: AsyncSession, video_id: uuid.UUID) -> Video:
    """Load the video fresh and ensure the worker may still write to it.

    Raises:
        NotFoundError: The video was deleted (e.g. with its series).
        CancelledVideoError: The video was stopped or is no longer in flight.
    """
    video = await db.get(Video, video_id, populate_existing=True)
    if video is None:
        raise NotFoundError("video", video_id)
    if video.is_cancelled or not video.is_in_flight:
        log.info(
            "worker_write_refused",
            video_id=str(video_id),
            status=video.status.value,
            cancelled=video.is_cancelled,
        )
        raise CancelledVideoError(video_id)
    return video


async def record_stage(db: AsyncSession, video_id: uuid.UUID, stage: GenerationStage) -> Video:
    """Mark the video GENERATING at the given stage label."""
    video = await _load_active(db, video_id)
    video.status = VideoStatus.GENERATING
    video.generation_stage = stage.value
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)
    log.info("generation_stage_recorded", video_id=str(video_id), stage=stage.value)
    return video


async def save_checkpoint(db: AsyncSession, video_id: uuid.UUID, checkpoint: Checkpoint) -> Video:
    """Persist the worker's latest checkpoint (replaces the stored one)."""
    video = await _load_active(db, video_id)
    video.checkpoint_data = dump_checkpoint(checkpoint)
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)
    log.debug("checkpoint_saved", video_id=str(video_id), stage=checkpoint.stage)
    return video


async def enter_review(db: AsyncSession, video_id: uuid.UUID, checkpoint: ReviewStage) -> Video:
    """Suspend the video in REVIEW with images and audio ready for selection."""
    video = await _load_active(db, video_id)
    if video.status == VideoStatus.QUEUED:
        video.status = VideoStatus.GENERATING
    video.checkpoint_data = dump_checkpoint(checkpoint)
    video.status = VideoStatus.REVIEW
    video.generation_stage = None
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)
    log.info(
        "video_entered_review",
        video_id=str(video_id),
        image_count=len(checkpoint.image_paths),
    )
    return video


async def mark_ready(db: AsyncSession, video_id: uuid.UUID) -> Video:
    """Finish generation: READY, public video_url set, checkpoint cleared."""
    video = await _load_active(db, video_id)
    if video.status == VideoStatus.QUEUED:
        video.status = VideoStatus.GENERATING
    video.status = VideoStatus.READY
    video.generation_stage = None
    video.video_url = public_video_url(video.id)
    video.checkpoint_data = None
    video.error_message = None
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)
    log.info("video_ready", video_id=str(video_id), video_url=video.video_url)
    return video


async def mark_failed(db: AsyncSession, video_id: uuid.UUID, error_message: str) -> Video:
    """Record a pipeline failure. The checkpoint is kept for retry."""
    video = await _load_active(db, video_id)
    video.status = VideoStatus.FAILED
    video.error_message = error_message
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)
    log.warning(
        "video_generation_failed",
        video_id=str(video_id),
        stage=video.generation_stage,
        error=error_message[:200],
    )
    return video
