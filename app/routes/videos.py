"""Video lifecycle routes.

This module provides FastAPI routes for user actions on a single video:
- POST /api/v1/videos/{id}/stop - Cancel an in-flight generation
- POST /api/v1/videos/{id}/retry - Requeue a failed or stuck video
- POST /api/v1/videos/{id}/assemble - Resume a reviewed video into assembly
- POST /api/v1/videos/{id}/regenerate-image - Redraw one reviewed image
- POST /api/v1/videos/{id}/publish - Publish to social platforms
- POST /api/v1/videos/{id}/reset-posted - Clear publish outcomes
- POST /api/v1/videos/{id}/update-link - Record a manually made post

Pattern:
    Routes only parse, inject and serialize. Services raise domain
    exceptions and app.main maps them to HTTP status codes.
"""

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth import CurrentUser, get_current_user
from app.config import AppSettings, get_app_settings
from app.database import get_session, get_session_factory
from app.exceptions import (
    CancelledVideoError,
    ConflictError,
    InputValidationError,
    InvalidStateTransitionError,
    NotFoundError,
)
from app.models import Platform
from app.queue import JobQueue, get_job_queue
from app.schemas.video import (
    AssembleRequest,
    PublishAccepted,
    PublishRequest,
    PublishResponse,
    RegenerateImageRequest,
    RegenerateImageResponse,
    ResetPostedRequest,
    UpdateLinkRequest,
    VideoResponse,
)
from app.services import video_service
from app.services.providers import ProviderRegistry, get_provider_registry
from app.services.publish_service import PublishService
from app.services.review_service import ReviewService
from app.utils.logging import get_logger

log = get_logger(__name__)
router = APIRouter(prefix="/api/v1/videos", tags=["videos"])


def get_publish_service(settings: AppSettings = Depends(get_app_settings)) -> PublishService:
    return PublishService(settings=settings)


def get_review_service(
    queue: JobQueue = Depends(get_job_queue),
    registry: ProviderRegistry = Depends(get_provider_registry),
    settings: AppSettings = Depends(get_app_settings),
) -> ReviewService:
    return ReviewService(queue, registry, settings)


@router.post("/{video_id}/stop", response_model=VideoResponse)
async def stop_video(
    video_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> VideoResponse:
    video = await video_service.stop_video(db, video_id, user)
    return VideoResponse.from_video(video)


@router.post("/{video_id}/retry", response_model=VideoResponse)
async def retry_video(
    video_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    queue: JobQueue = Depends(get_job_queue),
    registry: ProviderRegistry = Depends(get_provider_registry),
    settings: AppSettings = Depends(get_app_settings),
) -> VideoResponse:
    video = await video_service.retry_video(db, video_id, user, queue, registry, settings)
    return VideoResponse.from_video(video)


@router.post("/{video_id}/assemble", response_model=VideoResponse)
async def assemble_video(
    video_id: uuid.UUID,
    body: AssembleRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    review: ReviewService = Depends(get_review_service),
) -> VideoResponse:
    selected = body.selected_indices if body else None
    video = await review.assemble(db, video_id, user, selected)
    return VideoResponse.from_video(video)


@router.post("/{video_id}/regenerate-image", response_model=RegenerateImageResponse)
async def regenerate_image(
    video_id: uuid.UUID,
    body: RegenerateImageRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    review: ReviewService = Depends(get_review_service),
) -> RegenerateImageResponse:
    result = await review.regenerate_image(db, video_id, user, body.index, body.prompt)
    return RegenerateImageResponse(
        index=result.index, image_path=result.image_path, prompt=result.prompt
    )


async def _publish_in_background(
    session_factory: async_sessionmaker[AsyncSession],
    service: PublishService,
    video_id: uuid.UUID,
    user: CurrentUser,
    platforms: list[Platform],
) -> None:
    """Run a publish after the 202 was sent, in its own transaction."""
    async with session_factory() as db:
        try:
            await service.publish_video(db, video_id, user, platforms)
            await db.commit()
        except (
            NotFoundError,
            CancelledVideoError,
            ConflictError,
            InvalidStateTransitionError,
            InputValidationError,
        ) as e:
            # Video deleted or changed while the request was backgrounded
            await db.rollback()
            log.warning(
                "background_publish_abandoned",
                video_id=str(video_id),
                error_type=type(e).__name__,
                error=str(e),
            )


@router.post(
    "/{video_id}/publish",
    response_model=PublishResponse,
    responses={status.HTTP_202_ACCEPTED: {"model": PublishAccepted}},
)
async def publish_video(
    video_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    body: PublishRequest | None = None,
    wait: bool = Query(default=False, description="Publish inline and return results"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: PublishService = Depends(get_publish_service),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Publish a video to its target platforms.

    Permalink polling can take several seconds per platform, so by default
    the request is validated, then the publish continues in the background
    and 202 is returned. wait=true publishes inline and returns the
    per-platform results.

    Returns:
        202 Accepted: Validation passed; publish continues in the background
        200 OK: wait=true; video state and per-platform results
    """
    platforms = body.platforms if body else None

    if wait:
        summary = await service.publish_video(db, video_id, user, platforms)
        return PublishResponse(
            video=VideoResponse.from_video(summary.video), results=summary.results
        )

    targets = await service.check_publishable(db, video_id, user, platforms)
    background_tasks.add_task(
        _publish_in_background, session_factory, service, video_id, user, targets
    )
    log.info(
        "publish_accepted",
        video_id=str(video_id),
        platforms=[p.value for p in targets],
    )
    accepted = PublishAccepted(video_id=video_id, platforms=targets)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=accepted.model_dump(mode="json", by_alias=True),
    )


@router.post("/{video_id}/reset-posted", response_model=VideoResponse)
async def reset_posted(
    video_id: uuid.UUID,
    body: ResetPostedRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> VideoResponse:
    platforms = body.platforms if body else None
    video = await video_service.reset_posted(db, video_id, user, platforms)
    return VideoResponse.from_video(video)


@router.post("/{video_id}/update-link", response_model=VideoResponse)
async def update_link(
    video_id: uuid.UUID,
    body: UpdateLinkRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: PublishService = Depends(get_publish_service),
) -> VideoResponse:
    video = await service.update_manual_link(db, video_id, user, body.platform, body.url)
    return VideoResponse.from_video(video)
