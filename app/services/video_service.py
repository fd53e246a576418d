"""Video lifecycle actions: create, stop, retry, reset-posted.

Each action loads the video (404), authorizes the caller (403), checks the
action's precondition status (409) and only then mutates. Services flush but
never commit; the request session in app.database owns the transaction.

Single-In-Flight Rule:
    create_queued_video() and retry_video() check for another QUEUED or
    GENERATING video of the same series right before writing. The partial
    unique index uq_videos_series_in_flight catches a lost race, and
    flush_or_conflict() turns the resulting IntegrityError into ConflictError.

Optimistic Locking:
    Video.version is the mapper's version counter. A concurrent edit makes the
    UPDATE match no row; StaleDataError is likewise mapped to ConflictError.
"""

import re
import uuid
from collections.abc import Sequence
from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.auth import CurrentUser
from app.config import AppSettings, get_app_settings
from app.exceptions import ConflictError, InvalidStateTransitionError, NotFoundError
from app.models import (
    IN_FLIGHT_STATUSES,
    RETRYABLE_STATUSES,
    STOPPED_BY_USER_MESSAGE,
    Character,
    Series,
    Video,
    VideoStatus,
)
from app.queue import JobQueue
from app.schemas.job import GenerationJob, ResolvedProviderIds
from app.schemas.video import (
    Scene,
    normalize_posted_platforms,
    posted_platforms_to_storage,
)
from app.services.catalog import art_style_prompts, get_art_style, get_niche
from app.services.permissions import check_video_limit, ensure_owner
from app.services.provider_resolver import ResolvedProviders, resolve_providers
from app.services.providers import ProviderRegistry, ScriptParams, generate_script_checked

log = structlog.get_logger(__name__)

SERIES_IN_FLIGHT_MESSAGE = "A video is already being generated for this series"
STALE_VIDEO_MESSAGE = "Video was modified concurrently; reload and try again"
DEFAULT_DURATION = 45
DEFAULT_TONE = "dramatic"
DEFAULT_VOICE_ID = "default"

_SCENE_MARKER = re.compile(r"\[Scene \d+\]\n")


async def flush_or_conflict(db: AsyncSession, message: str = SERIES_IN_FLIGHT_MESSAGE) -> None:
    """Flush pending changes, mapping constraint and version races to ConflictError."""
    try:
        await db.flush()
    except IntegrityError as e:
        log.warning("flush_integrity_conflict", error=str(e.orig)[:200])
        raise ConflictError(message) from e
    except StaleDataError as e:
        log.warning("flush_stale_version")
        raise ConflictError(STALE_VIDEO_MESSAGE) from e


async def load_video(db: AsyncSession, video_id: uuid.UUID) -> Video:
    """Load a video with its series and the series owner.

    Raises:
        NotFoundError: If no such video exists.
    """
    result = await db.execute(
        select(Video)
        .where(Video.id == video_id)
        .options(selectinload(Video.series).selectinload(Series.user))
    )
    video = result.scalar_one_or_none()
    if video is None:
        raise NotFoundError("video", video_id)
    return video


async def load_authorized_video(
    db: AsyncSession, video_id: uuid.UUID, actor: CurrentUser
) -> Video:
    video = await load_video(db, video_id)
    ensure_owner(actor, video.series.user_id, "video")
    return video


async def load_series(db: AsyncSession, series_id: uuid.UUID) -> Series:
    result = await db.execute(
        select(Series).where(Series.id == series_id).options(selectinload(Series.user))
    )
    series = result.scalar_one_or_none()
    if series is None:
        raise NotFoundError("series", series_id)
    return series


async def has_in_flight_video(
    db: AsyncSession, series_id: uuid.UUID, exclude_video_id: uuid.UUID | None = None
) -> bool:
    query = select(Video.id).where(
        Video.series_id == series_id,
        Video.status.in_(IN_FLIGHT_STATUSES),
    )
    if exclude_video_id is not None:
        query = query.where(Video.id != exclude_video_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def resolve_character_prompt(
    db: AsyncSession, character_id: uuid.UUID | None
) -> str | None:
    if character_id is None:
        return None
    character = await db.get(Character, character_id)
    return character.prompt if character else None


def scenes_to_storage(scenes: Sequence[Scene]) -> list[dict]:
    return [scene.model_dump(by_alias=True) for scene in scenes]


def stored_scenes(video: Video) -> list[Scene]:
    return [Scene.model_validate(item) for item in video.scenes_json or []]


def scenes_from_script(script_text: str | None, art_style_id: str | None) -> list[Scene]:
    """Rebuild scenes from a script written with "[Scene N]" markers.

    The visual description is derived from the scene text, since the script
    alone does not carry the generated one.
    """
    if not script_text or "[Scene" not in script_text:
        return []
    style = get_art_style(art_style_id)
    modifier = style.prompt_modifier if style else "cinematic"
    parts = [part.strip() for part in _SCENE_MARKER.split(script_text) if part.strip()]
    return [
        Scene(text=part, visual_description=f'{modifier}: scene depicting "{part[:100]}"')
        for part in parts
    ]


class ContentProfile(Protocol):
    niche: str
    art_style: str
    voice_id: str | None
    language: str
    tone: str | None


def build_generation_job(
    video: Video,
    series: Series,
    providers: ResolvedProviders,
    *,
    profile: ContentProfile | None = None,
    duration: int | None = None,
    character_prompt: str | None = None,
    scenes: Sequence[Scene] | None = None,
    script_text: str | None = None,
    music_path: str | None = None,
    review_mode: bool = False,
) -> GenerationJob:
    """Assemble a fully-resolved job from the video, its series and providers.

    Args:
        profile: Source of niche, art style, voice, language and tone.
            Defaults to the series; automations pass themselves so later edits
            to the automation apply to the next run.
        music_path: Track chosen earlier in the pipeline; falls back to the
            niche default.
    """
    profile = profile or series
    prompt_modifier, negative_prompt = art_style_prompts(profile.art_style)
    niche = get_niche(profile.niche)
    return GenerationJob(
        video_id=video.id,
        series_id=series.id,
        providers=ResolvedProviderIds(
            llm=providers.llm, tts=providers.tts, image=providers.image
        ),
        art_style=profile.art_style,
        art_style_prompt=prompt_modifier,
        negative_prompt=negative_prompt,
        tone=profile.tone or DEFAULT_TONE,
        niche=profile.niche,
        voice_id=profile.voice_id or DEFAULT_VOICE_ID,
        language=profile.language or "en",
        duration=duration or video.target_duration or DEFAULT_DURATION,
        title=video.title,
        music_path=music_path or (niche.default_music if niche else None),
        character_prompt=character_prompt,
        scenes=list(scenes) if scenes is not None else None,
        script_text=script_text,
        review_mode=review_mode,
    )


async def create_queued_video(
    db: AsyncSession,
    series: Series,
    *,
    title: str | None,
    script_text: str | None,
    scenes: Sequence[Scene],
    target_duration: int,
    in_flight_message: str = SERIES_IN_FLIGHT_MESSAGE,
) -> Video:
    """Insert a QUEUED video for the series.

    Raises:
        ConflictError: The series already has a QUEUED or GENERATING video.
    """
    if await has_in_flight_video(db, series.id):
        raise ConflictError(in_flight_message)

    video = Video(
        series_id=series.id,
        status=VideoStatus.QUEUED,
        title=title,
        script_text=script_text,
        scenes_json=scenes_to_storage(scenes),
        target_duration=target_duration,
        posted_platforms=[],
    )
    db.add(video)
    await flush_or_conflict(db, in_flight_message)
    log.info("video_created", video_id=str(video.id), series_id=str(series.id))
    return video


def mark_stopped(video: Video) -> None:
    """Force an in-flight video to FAILED with the user-stop marker."""
    video.status = VideoStatus.FAILED
    video.generation_stage = None
    video.error_message = STOPPED_BY_USER_MESSAGE


async def stop_video(db: AsyncSession, video_id: uuid.UUID, actor: CurrentUser) -> Video:
    """Cancel a QUEUED or GENERATING video.

    The worker notices on its next progress write (CancelledVideoError).

    Raises:
        InvalidStateTransitionError: Video is not in flight.
    """
    video = await load_authorized_video(db, video_id, actor)
    if not video.is_in_flight:
        raise InvalidStateTransitionError(
            "Only queued or generating videos can be stopped",
            from_status=video.status,
            to_status=VideoStatus.FAILED,
        )
    mark_stopped(video)
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)
    log.info("video_stopped", video_id=str(video.id), actor_id=str(actor.id))
    return video


async def retry_video(
    db: AsyncSession,
    video_id: uuid.UUID,
    actor: CurrentUser,
    queue: JobQueue,
    registry: ProviderRegistry,
    settings: AppSettings | None = None,
) -> Video:
    """Re-enqueue a FAILED (or stuck QUEUED) video.

    Scenes come from scenes_json, then from a "[Scene N]" script, and only
    when neither exists is the script generated again. The checkpoint is kept
    so the worker resumes after its last completed stage.

    Raises:
        InvalidStateTransitionError: Video is not FAILED or QUEUED.
        PlanLimitError: The owner's monthly limit is used up.
        ConflictError: Another video of the series is in flight.
        ProviderError: Script regeneration returned no scenes.
    """
    settings = settings or get_app_settings()
    video = await load_authorized_video(db, video_id, actor)
    series = video.series

    if video.status not in RETRYABLE_STATUSES:
        raise InvalidStateTransitionError(
            "Only failed or stuck videos can be retried",
            from_status=video.status,
            to_status=VideoStatus.QUEUED,
        )

    owner = series.user
    if owner is not None:
        await check_video_limit(db, owner, exclude_video_id=video.id)

    if await has_in_flight_video(db, series.id, exclude_video_id=video.id):
        raise ConflictError(SERIES_IN_FLIGHT_MESSAGE)

    providers = resolve_providers(series, owner, settings)
    character_prompt = await resolve_character_prompt(db, series.character_id)

    scenes = stored_scenes(video) or scenes_from_script(video.script_text, series.art_style)
    if not scenes:
        log.info("retry_regenerating_script", video_id=str(video.id), llm=providers.llm)
        niche = get_niche(series.niche)
        script = await generate_script_checked(
            registry.script(providers.llm),
            ScriptParams(
                niche=niche.name if niche else series.niche,
                tone=series.tone or DEFAULT_TONE,
                art_style=series.art_style,
                duration=video.target_duration or DEFAULT_DURATION,
                language=series.language,
                character_prompt=character_prompt,
            ),
            providers.llm,
        )
        scenes = script.scenes
        video.script_text = script.full_script
        video.title = script.title

    video.scenes_json = scenes_to_storage(scenes)
    video.status = VideoStatus.QUEUED
    video.generation_stage = None
    video.error_message = None
    await flush_or_conflict(db)

    await queue.submit(
        build_generation_job(
            video,
            series,
            providers,
            character_prompt=character_prompt,
            scenes=scenes,
            script_text=video.script_text,
        )
    )
    log.info(
        "video_retried",
        video_id=str(video.id),
        scene_count=len(scenes),
        resumes_checkpoint=video.checkpoint_data is not None,
    )
    return video


async def reset_posted(
    db: AsyncSession,
    video_id: uuid.UUID,
    actor: CurrentUser,
    platforms: Sequence | None = None,
) -> Video:
    """Clear all (platforms None or empty) or some publish entries.

    A POSTED video falls back to READY once no successful entry remains.

    Raises:
        InvalidStateTransitionError: Video is not READY or POSTED.
    """
    video = await load_authorized_video(db, video_id, actor)
    if video.status not in (VideoStatus.READY, VideoStatus.POSTED):
        raise InvalidStateTransitionError(
            "Only ready or posted videos can be reset",
            from_status=video.status,
            to_status=VideoStatus.READY,
        )

    entries = normalize_posted_platforms(video.posted_platforms)
    if platforms:
        cleared = set(platforms)
        remaining = [entry for entry in entries if entry.platform not in cleared]
    else:
        remaining = []

    video.posted_platforms = posted_platforms_to_storage(remaining)
    if video.status == VideoStatus.POSTED and not any(e.success for e in remaining):
        video.status = VideoStatus.READY
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)

    log.info(
        "video_posts_reset",
        video_id=str(video.id),
        cleared=[p.value for p in platforms] if platforms else "all",
        remaining=len(remaining),
        status=video.status.value,
    )
    return video


async def reset_series_posted(db: AsyncSession, series_id: uuid.UUID, actor: CurrentUser) -> int:
    """Clear publish entries of every READY/POSTED video of a series.

    Returns:
        Number of videos reset.
    """
    series = await load_series(db, series_id)
    ensure_owner(actor, series.user_id, "series")

    result = await db.execute(
        select(Video).where(
            Video.series_id == series.id,
            Video.status.in_((VideoStatus.READY, VideoStatus.POSTED)),
        )
    )
    videos = list(result.scalars().all())
    for video in videos:
        video.posted_platforms = []
        video.status = VideoStatus.READY
    await flush_or_conflict(db, STALE_VIDEO_MESSAGE)

    log.info("series_posts_reset", series_id=str(series.id), count=len(videos))
    return len(videos)
