"""Automation Trigger and schedule handling.

An Automation produces one video per scheduled run into a Series of its own,
created lazily on the first trigger ("[Auto] <name>"). The external scheduler
calls is_due() for every enabled automation and trigger_automation() for the
due ones; users can also trigger manually.

Trigger Sequence:
    1. Load automation (404) and authorize (403)
    2. Create and bind the series if missing
    3. Single-in-flight check on that series (409)
    4. Resolve character prompt and providers (automation over owner defaults)
    5. Generate the script with the resolved llm provider
    6. Insert the QUEUED video and submit the fully resolved job
    7. Stamp last_run_at, only after the job was accepted

A failure at any step leaves last_run_at untouched, so the scheduler tries
again on its next pass.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth import CurrentUser
from app.config import AppSettings, get_app_settings
from app.exceptions import ConflictError, InputValidationError, NotFoundError
from app.models import IN_FLIGHT_STATUSES, Automation, Series, Video, utcnow
from app.queue import JobQueue
from app.schemas.automation import AutomationUpdate
from app.services.permissions import ensure_owner
from app.services.provider_resolver import resolve_providers
from app.services.providers import ProviderRegistry, ScriptParams, generate_script_checked
from app.services.video_service import (
    build_generation_job,
    create_queued_video,
    flush_or_conflict,
    has_in_flight_video,
    mark_stopped,
    resolve_character_prompt,
)
from app.utils.logging import get_logger

log = get_logger(__name__)

AUTOMATION_IN_FLIGHT_MESSAGE = "A video is already being generated for this automation"
AUTO_SERIES_PREFIX = "[Auto] "

# Minimum hours between runs, slightly under the nominal period so a run a
# few minutes early on the next day still fires.
FREQUENCY_THRESHOLD_HOURS = {
    "daily": 20,
    "every_other_day": 44,
    "weekly": 164,
}
SCHEDULE_WINDOW_MINUTES = 10

# Columns an explicit null in PATCH clears
NULLABLE_UPDATE_FIELDS = frozenset(
    {"voice_id", "llm_provider", "tts_provider", "image_provider", "character_id"}
)


@dataclass
class TriggerResult:
    video: Video
    series: Series


@dataclass
class DueCheck:
    """Outcome of a schedule evaluation, with a reason for the scheduler log."""

    due: bool
    reason: str


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("automation_timezone_invalid", timezone=name)
        return ZoneInfo("UTC")


def is_due(automation: Automation, now: datetime | None = None) -> DueCheck:
    """Decide whether the scheduler should trigger an automation now.

    Due when the local time (in the automation's timezone) is within
    SCHEDULE_WINDOW_MINUTES of any configured post time in the same hour,
    and either it never ran or the frequency threshold has elapsed.
    """
    if not automation.enabled:
        return DueCheck(False, "disabled")
    if not automation.post_times:
        return DueCheck(False, "no post times configured")

    now = _as_utc(now or datetime.now(timezone.utc))
    local = now.astimezone(_zone(automation.timezone))

    in_window = False
    for post_time in automation.post_times:
        hour, minute = (int(part) for part in post_time.split(":"))
        if local.hour == hour and abs(local.minute - minute) < SCHEDULE_WINDOW_MINUTES:
            in_window = True
            break
    if not in_window:
        return DueCheck(
            False,
            f"not in window (now={local:%H:%M} {automation.timezone}, "
            f"targets={','.join(automation.post_times)})",
        )

    if automation.last_run_at is None:
        return DueCheck(True, "never ran")

    hours_since = (now - _as_utc(automation.last_run_at)).total_seconds() / 3600
    threshold = FREQUENCY_THRESHOLD_HOURS.get(
        automation.frequency, FREQUENCY_THRESHOLD_HOURS["daily"]
    )
    if hours_since < threshold:
        return DueCheck(
            False, f"ran {hours_since:.1f}h ago, need {threshold}h ({automation.frequency})"
        )
    return DueCheck(True, f"{hours_since:.1f}h since last run, threshold {threshold}h")


async def load_automation(db: AsyncSession, automation_id: uuid.UUID) -> Automation:
    result = await db.execute(
        select(Automation)
        .where(Automation.id == automation_id)
        .options(selectinload(Automation.user), selectinload(Automation.series))
    )
    automation = result.scalar_one_or_none()
    if automation is None:
        raise NotFoundError("automation", automation_id)
    return automation


async def ensure_series(db: AsyncSession, automation: Automation) -> Series:
    """Return the automation's series, creating and binding it on first use."""
    if automation.series is not None:
        return automation.series

    series = Series(
        user_id=automation.user_id,
        name=f"{AUTO_SERIES_PREFIX}{automation.name}",
        niche=automation.niche,
        art_style=automation.art_style,
        voice_id=automation.voice_id,
        language=automation.language,
        tone=automation.tone,
        llm_provider=automation.llm_provider,
        tts_provider=automation.tts_provider,
        image_provider=automation.image_provider,
        character_id=automation.character_id,
    )
    db.add(series)
    await db.flush()
    automation.series_id = series.id
    automation.series = series
    await db.flush()
    log.info(
        "automation_series_created",
        automation_id=str(automation.id),
        series_id=str(series.id),
    )
    return series


async def trigger_automation(
    db: AsyncSession,
    automation_id: uuid.UUID,
    actor: CurrentUser,
    queue: JobQueue,
    registry: ProviderRegistry,
    settings: AppSettings | None = None,
) -> TriggerResult:
    """Produce one video for an automation now.

    Raises:
        NotFoundError: Unknown automation.
        AuthorizationError: Caller neither owns it nor is privileged.
        ConflictError: The automation's series already has a video in flight.
        ProviderError: The script generator failed or returned no scenes.
    """
    settings = settings or get_app_settings()
    automation = await load_automation(db, automation_id)
    ensure_owner(actor, automation.user_id, "automation")

    series = await ensure_series(db, automation)
    if await has_in_flight_video(db, series.id):
        raise ConflictError(AUTOMATION_IN_FLIGHT_MESSAGE)

    character_prompt = await resolve_character_prompt(db, automation.character_id)
    providers = resolve_providers(automation, automation.user, settings)

    script = await generate_script_checked(
        registry.script(providers.llm),
        ScriptParams(
            niche=automation.niche,
            tone=automation.tone,
            art_style=automation.art_style,
            duration=automation.duration,
            language=automation.language,
            character_prompt=character_prompt,
        ),
        providers.llm,
    )

    video = await create_queued_video(
        db,
        series,
        title=script.title,
        script_text=script.full_script,
        scenes=script.scenes,
        target_duration=automation.duration,
        in_flight_message=AUTOMATION_IN_FLIGHT_MESSAGE,
    )
    await queue.submit(
        build_generation_job(
            video,
            series,
            providers,
            profile=automation,
            duration=automation.duration,
            character_prompt=character_prompt,
            scenes=script.scenes,
            script_text=script.full_script,
        )
    )

    automation.last_run_at = utcnow()
    await db.flush()

    log.info(
        "automation_triggered",
        automation_id=str(automation.id),
        video_id=str(video.id),
        series_id=str(series.id),
        llm=providers.llm,
    )
    return TriggerResult(video=video, series=series)


async def stop_automation(
    db: AsyncSession, automation_id: uuid.UUID, actor: CurrentUser
) -> tuple[Automation, Video | None]:
    """Disable an automation and cancel its in-flight video, if any.

    Returns:
        The automation and the cancelled video (None when nothing was running).
    """
    automation = await load_automation(db, automation_id)
    ensure_owner(actor, automation.user_id, "automation")

    automation.enabled = False
    cancelled: Video | None = None
    if automation.series_id is not None:
        result = await db.execute(
            select(Video).where(
                Video.series_id == automation.series_id,
                Video.status.in_(IN_FLIGHT_STATUSES),
            )
        )
        cancelled = result.scalars().first()
        if cancelled is not None:
            mark_stopped(cancelled)
    await flush_or_conflict(db)

    log.info(
        "automation_stopped",
        automation_id=str(automation.id),
        cancelled_video_id=str(cancelled.id) if cancelled else None,
    )
    return automation, cancelled


async def update_automation(
    db: AsyncSession,
    automation_id: uuid.UUID,
    actor: CurrentUser,
    update: AutomationUpdate,
) -> Automation:
    """Apply a partial update; schedule changes reset last_run_at.

    Raises:
        InputValidationError: Unknown timezone.
    """
    automation = await load_automation(db, automation_id)
    ensure_owner(actor, automation.user_id, "automation")

    fields = update.model_fields_set
    if "timezone" in fields and update.timezone is not None:
        try:
            ZoneInfo(update.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise InputValidationError(
                f"Unknown timezone: {update.timezone}", field="timezone"
            ) from e

    for name in fields:
        value = getattr(update, name)
        if name == "target_platforms":
            value = [platform.value for platform in value or []]
        elif value is None and name not in NULLABLE_UPDATE_FIELDS:
            # Non-nullable columns ignore an explicit null
            continue
        setattr(automation, name, value)

    if fields & set(Automation.SCHEDULE_FIELDS):
        automation.last_run_at = None
    await db.flush()

    log.info(
        "automation_updated",
        automation_id=str(automation.id),
        fields=sorted(fields),
        schedule_reset=bool(fields & set(Automation.SCHEDULE_FIELDS)),
    )
    return automation
