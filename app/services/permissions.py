"""Ownership checks and plan limits.

Every mutating action authorizes the caller before touching state: the caller
must own the record, unless they hold a privileged role (ADMIN or OWNER).

Monthly video limits are counted against the record owner's plan, over the
owner's videos created this calendar month (UTC) that did not fail.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import CurrentUser
from app.exceptions import AuthorizationError, PlanLimitError
from app.models import Series, User, UserPlan, UserRole, Video, VideoStatus

log = structlog.get_logger(__name__)

PLAN_LIMITS: dict[UserPlan, int] = {
    UserPlan.FREE: 3,
    UserPlan.STARTER: 30,
    UserPlan.PRO: 100,
    UserPlan.AGENCY: 300,
}

PRIVILEGED_ROLES = (UserRole.ADMIN, UserRole.OWNER)


def is_privileged(role: UserRole) -> bool:
    return role in PRIVILEGED_ROLES


def ensure_owner(actor: CurrentUser, owner_id: uuid.UUID, entity: str = "record") -> None:
    """Raise AuthorizationError unless `actor` owns the record or is privileged."""
    if actor.id == owner_id or is_privileged(actor.role):
        return
    log.warning(
        "authorization_denied",
        actor_id=str(actor.id),
        owner_id=str(owner_id),
        entity=entity,
    )
    raise AuthorizationError(f"Not allowed to modify this {entity}")


def _month_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def count_monthly_videos(db: AsyncSession, owner_id: uuid.UUID) -> int:
    """Videos of the owner's series created this month, excluding FAILED ones."""
    result = await db.execute(
        select(func.count(Video.id))
        .join(Series, Video.series_id == Series.id)
        .where(
            Series.user_id == owner_id,
            Video.created_at >= _month_start(),
            Video.status != VideoStatus.FAILED,
        )
    )
    return int(result.scalar_one())


async def check_video_limit(
    db: AsyncSession, owner: User, exclude_video_id: uuid.UUID | None = None
) -> None:
    """Raise PlanLimitError when the owner has used up this month's videos.

    Args:
        owner: Owner of the series the video belongs to.
        exclude_video_id: Video already counted that is being re-run (retry),
            so it does not count against its own re-enqueue.
    """
    if is_privileged(owner.role):
        return

    limit = PLAN_LIMITS.get(owner.plan, PLAN_LIMITS[UserPlan.FREE])
    current = await count_monthly_videos(db, owner.id)
    if exclude_video_id is not None:
        video = await db.get(Video, exclude_video_id)
        if (
            video is not None
            and video.status != VideoStatus.FAILED
            and video.created_at is not None
            and _as_utc(video.created_at) >= _month_start()
        ):
            current -= 1

    if current >= limit:
        log.info(
            "plan_limit_reached",
            user_id=str(owner.id),
            plan=owner.plan.value,
            current=current,
            limit=limit,
        )
        raise PlanLimitError(
            f"Monthly video limit reached ({current}/{limit}) for the {owner.plan.value} plan",
            current=current,
            limit=limit,
        )


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
