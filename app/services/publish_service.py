"""Publish Orchestrator: push a finished video to social platforms.

Key Responsibilities:
- Resolve target platforms (request, else the series automation's targets
  that have no successful post yet)
- Auto-post READY videos of enabled automations (publish_due_videos)
- Attempt every platform independently and concurrently; one failure never
  blocks another, and a partial failure is data, not an error
- Classify every platform failure into an actionable message
- Merge outcomes into Video.posted_platforms keyed by platform, under a
  per-video lock, and move the video to POSTED when any platform succeeded
- Manual-link override for posts made outside the orchestrator

Platform Flows (see app.clients):
    FACEBOOK   local MP4 → Reels upload → permalink poll → fallback URL
    INSTAGRAM  public URL (PUBLIC_APP_URL + video_url) → container → publish
    YOUTUBE    local MP4 → resumable upload → shorts URL

Concurrency:
    Platform attempts run with asyncio.gather outside the lock (permalink
    polling alone may take ~13s). The merge then happens under a per-video
    asyncio.Lock after re-reading the row, and the version column rejects a
    merge racing with another process.
"""

import asyncio
import re
import uuid
import weakref
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import CurrentUser
from app.clients.base import PostOutcome, TransientHTTPError
from app.clients.facebook import FacebookClient
from app.clients.instagram import InstagramClient
from app.clients.youtube import YouTubeClient
from app.config import AppSettings, get_app_settings
from app.exceptions import InputValidationError, InvalidStateTransitionError
from app.models import (
    PUBLISHABLE_STATUSES,
    Automation,
    Platform,
    UserRole,
    Video,
    VideoStatus,
)
from app.schemas.video import (
    PlatformPostResult,
    merge_posted_platforms,
    normalize_posted_platforms,
    posted_platforms_to_storage,
)
from app.services.captions import facebook_caption, instagram_caption, youtube_metadata
from app.services.credential_service import AccountCredentials, CredentialService
from app.services.error_classifier import classify_message
from app.services.video_service import (
    STALE_VIDEO_MESSAGE,
    flush_or_conflict,
    load_authorized_video,
)
from app.utils.encryption import DecryptionError
from app.utils.filesystem import get_video_file
from app.utils.logging import get_logger

log = get_logger(__name__)

NO_ACCOUNT_MESSAGE = "No connected account"
ALREADY_POSTED_MESSAGE = "Video is already posted to every target platform"
UNREADABLE_CREDENTIALS_MESSAGE = "Stored credentials could not be read; reconnect the account"

# Videos auto-posted per scheduler tick
SCHEDULED_PUBLISH_BATCH = 10
SCHEDULER_ACTOR = CurrentUser(id=uuid.UUID(int=0), role=UserRole.OWNER)

PLATFORM_URL_PATTERNS: dict[Platform, re.Pattern[str]] = {
    Platform.YOUTUBE: re.compile(
        r"^https?://(www\.)?(youtube\.com/(shorts/|watch\?v=)|youtu\.be/)", re.IGNORECASE
    ),
    Platform.INSTAGRAM: re.compile(r"^https?://(www\.)?instagram\.com/(reel|p)/", re.IGNORECASE),
    Platform.FACEBOOK: re.compile(
        r"^https?://(www\.|m\.)?(facebook\.com|fb\.watch)/(reel|share/r|watch|.*/videos)/",
        re.IGNORECASE,
    ),
}

PLATFORM_URL_EXAMPLES: dict[Platform, str] = {
    Platform.YOUTUBE: "youtube.com/shorts/... or youtu.be/...",
    Platform.INSTAGRAM: "instagram.com/reel/... or instagram.com/p/...",
    Platform.FACEBOOK: "facebook.com/reel/... or facebook.com/share/r/...",
}

# Per-video merge locks (process-local). An entry lives only while some
# coroutine holds or awaits its lock.
_video_locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
    weakref.WeakValueDictionary()
)


def get_video_lock(video_id: uuid.UUID) -> asyncio.Lock:
    lock = _video_locks.get(video_id)
    if lock is None:
        lock = asyncio.Lock()
        _video_locks[video_id] = lock
    return lock


def remaining_targets(
    target_platforms: Sequence[str] | None,
    posted_platforms: list | None,
    retry_failed: bool = True,
) -> list[Platform]:
    """Automation target platforms that still lack a post for a video.

    Args:
        retry_failed: Keep platforms whose last attempt failed. When False,
            any recorded entry counts as done.
    """
    done = {
        entry.platform
        for entry in normalize_posted_platforms(posted_platforms)
        if entry.success or not retry_failed
    }
    targets = dict.fromkeys(Platform(p) for p in target_platforms or [])
    return [platform for platform in targets if platform not in done]


def validate_manual_link(platform: Platform, url: str) -> str:
    """Check a user-supplied post URL for a platform.

    Returns:
        The trimmed URL.

    Raises:
        InputValidationError: field="url" with the reason.
    """
    url = (url or "").strip()
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise InputValidationError("Invalid URL format", field="url") from e
    if not parsed.scheme or not parsed.netloc:
        raise InputValidationError("Invalid URL format", field="url")
    if parsed.scheme.lower() not in ("http", "https") or not url.lower().startswith(
        ("http://", "https://")
    ):
        raise InputValidationError("URL must start with http:// or https://", field="url")

    if not PLATFORM_URL_PATTERNS[platform].match(url):
        raise InputValidationError(
            f"URL doesn't look like a {platform.value.lower()} link. "
            f"Expected: {PLATFORM_URL_EXAMPLES[platform]}",
            field="url",
        )
    return url


@dataclass
class PublishContext:
    """Everything a platform attempt needs, captured before leaving the session."""

    video_id: uuid.UUID
    title: str
    niche: str | None
    script_text: str | None
    include_ai_tags: bool
    video_path: Path
    public_url: str


@dataclass
class PublishSummary:
    """Result of one publish request."""

    video: Video
    results: list[PlatformPostResult] = field(default_factory=list)

    @property
    def any_success(self) -> bool:
        return any(result.success for result in self.results)


class PublishService:
    """Publishes videos and records per-platform outcomes.

    Args:
        settings: App settings (public URL, videos root, permalink waits).
        credentials: Credential service used to decrypt connected accounts.
        http_client: Optional shared httpx client handed to platform clients.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        credentials: CredentialService | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_app_settings()
        self.credentials = credentials or CredentialService()
        self.http_client = http_client

    async def _automation_for(self, db: AsyncSession, series_id: uuid.UUID) -> Automation | None:
        result = await db.execute(select(Automation).where(Automation.series_id == series_id))
        return result.scalar_one_or_none()

    async def _load_publishable(
        self,
        db: AsyncSession,
        video_id: uuid.UUID,
        actor: CurrentUser,
        platforms: Sequence[Platform] | None,
    ) -> tuple[Video, Automation | None, list[Platform]]:
        video = await load_authorized_video(db, video_id, actor)
        if video.status not in PUBLISHABLE_STATUSES:
            raise InvalidStateTransitionError(
                "Only ready or posted videos can be published",
                from_status=video.status,
                to_status=VideoStatus.POSTED,
            )
        if not video.video_url:
            raise InputValidationError("Video has no rendered file to publish")

        automation = await self._automation_for(db, video.series_id)
        targets = list(dict.fromkeys(platforms or []))
        if not targets and automation is not None and automation.target_platforms:
            targets = remaining_targets(automation.target_platforms, video.posted_platforms)
            if not targets:
                raise InputValidationError(ALREADY_POSTED_MESSAGE, field="platforms")
        if not targets:
            raise InputValidationError("No target platforms selected", field="platforms")
        return video, automation, targets

    async def check_publishable(
        self,
        db: AsyncSession,
        video_id: uuid.UUID,
        actor: CurrentUser,
        platforms: Sequence[Platform] | None = None,
    ) -> list[Platform]:
        """Run publish validation without publishing (used before backgrounding).

        Returns:
            The resolved target platforms.
        """
        _, _, targets = await self._load_publishable(db, video_id, actor, platforms)
        return targets

    async def publish_video(
        self,
        db: AsyncSession,
        video_id: uuid.UUID,
        actor: CurrentUser,
        platforms: Sequence[Platform] | None = None,
    ) -> PublishSummary:
        """Publish a READY/SCHEDULED/POSTED video to the target platforms.

        Raises:
            InvalidStateTransitionError: Video is not publishable.
            InputValidationError: No video file or no target platforms.
        """
        video, automation, targets = await self._load_publishable(
            db, video_id, actor, platforms
        )
        series = video.series

        context = PublishContext(
            video_id=video.id,
            title=video.title or series.name,
            niche=series.niche,
            script_text=video.script_text,
            include_ai_tags=automation.include_ai_tags if automation else True,
            video_path=get_video_file(self.settings.videos_root, video.id),
            public_url=f"{self.settings.public_app_url}{video.video_url}",
        )

        # Credentials are read sequentially; the session is not safe to share
        # across concurrent tasks.
        accounts: dict[Platform, AccountCredentials | None] = {}
        preset_failures: dict[Platform, str] = {}
        for platform in targets:
            try:
                accounts[platform] = await self.credentials.get_account_credentials(
                    series.user_id, platform, db
                )
            except DecryptionError:
                preset_failures[platform] = UNREADABLE_CREDENTIALS_MESSAGE

        log.info(
            "publish_started",
            video_id=str(video.id),
            platforms=[p.value for p in targets],
        )
        results = await asyncio.gather(
            *[
                self._attempt(
                    platform, accounts.get(platform), context, preset_failures.get(platform)
                )
                for platform in targets
            ]
        )

        async with get_video_lock(video.id):
            await db.refresh(video, attribute_names=["posted_platforms", "status", "version"])
            merged = merge_posted_platforms(
                normalize_posted_platforms(video.posted_platforms), list(results)
            )
            video.posted_platforms = posted_platforms_to_storage(merged)
            if any(result.success for result in results):
                video.status = VideoStatus.POSTED
            await flush_or_conflict(db, STALE_VIDEO_MESSAGE)

        log.info(
            "publish_finished",
            video_id=str(video.id),
            succeeded=[r.platform.value for r in results if r.success],
            failed=[r.platform.value for r in results if not r.success],
            status=video.status.value,
        )
        return PublishSummary(video=video, results=list(results))

    async def publish_due_videos(
        self, db: AsyncSession, limit: int = SCHEDULED_PUBLISH_BATCH
    ) -> list[PublishSummary]:
        """Auto-post READY videos whose series automation has target platforms.

        Called by the external scheduler on each tick, after due automations
        were triggered. Each video goes only to targets with no recorded
        attempt, so a platform that failed is left for the user to retry.
        Videos that stop being publishable between the query and the publish
        are logged and skipped.

        Returns:
            One summary per published video, oldest video first.
        """
        result = await db.execute(
            select(Video, Automation)
            .join(Automation, Automation.series_id == Video.series_id)
            .where(
                Video.status == VideoStatus.READY,
                Video.video_url.is_not(None),
                Automation.enabled.is_(True),
            )
            .order_by(Video.created_at)
        )

        summaries: list[PublishSummary] = []
        for video, automation in result.all():
            if len(summaries) >= limit:
                break
            targets = remaining_targets(
                automation.target_platforms, video.posted_platforms, retry_failed=False
            )
            if not targets:
                continue
            log.info(
                "scheduled_publish",
                video_id=str(video.id),
                automation_id=str(automation.id),
                platforms=[p.value for p in targets],
            )
            try:
                summaries.append(
                    await self.publish_video(db, video.id, SCHEDULER_ACTOR, targets)
                )
            except (InputValidationError, InvalidStateTransitionError) as e:
                log.warning(
                    "scheduled_publish_skipped",
                    video_id=str(video.id),
                    error_type=type(e).__name__,
                    error=str(e),
                )
        return summaries

    async def _attempt(
        self,
        platform: Platform,
        account: AccountCredentials | None,
        context: PublishContext,
        preset_failure: str | None = None,
    ) -> PlatformPostResult:
        """Run one platform publish and convert it into an outcome entry."""
        if preset_failure is not None:
            return PlatformPostResult(platform=platform, success=False, error=preset_failure)
        if account is None:
            return PlatformPostResult(platform=platform, success=False, error=NO_ACCOUNT_MESSAGE)

        try:
            if platform == Platform.FACEBOOK:
                outcome = await self.publish_facebook(account, context)
            elif platform == Platform.INSTAGRAM:
                outcome = await self.publish_instagram(account, context)
            else:
                outcome = await self.publish_youtube(account, context)
        except (httpx.HTTPError, TransientHTTPError, OSError, ValueError) as e:
            log.warning(
                "platform_publish_exception",
                video_id=str(context.video_id),
                platform=platform.value,
                error_type=type(e).__name__,
            )
            outcome = PostOutcome(False, error=str(e) or type(e).__name__)

        if outcome.success:
            return PlatformPostResult(
                platform=platform, success=True, post_id=outcome.post_id, url=outcome.url
            )

        error = classify_message(outcome.error or "Unknown error", platform.value)
        log.warning(
            "platform_publish_failed",
            video_id=str(context.video_id),
            platform=platform.value,
            error=error[:200],
        )
        return PlatformPostResult(platform=platform, success=False, error=error)

    async def publish_facebook(
        self, account: AccountCredentials, context: PublishContext
    ) -> PostOutcome:
        if not context.video_path.is_file():
            return PostOutcome(False, error=f"Video file not found: {context.video_path.name}")
        caption = facebook_caption(
            context.title, context.niche, context.script_text, context.include_ai_tags
        )
        async with FacebookClient(
            account.facebook_page_id,
            account.access_token,
            settings=self.settings,
            http_client=self.http_client,
        ) as client:
            return await client.publish_reel(context.video_path, caption)

    async def publish_instagram(
        self, account: AccountCredentials, context: PublishContext
    ) -> PostOutcome:
        caption = instagram_caption(
            context.title, context.niche, context.script_text, context.include_ai_tags
        )
        async with InstagramClient(
            account.platform_user_id,
            account.access_token,
            settings=self.settings,
            http_client=self.http_client,
        ) as client:
            return await client.publish_reel(context.public_url, caption)

    async def publish_youtube(
        self, account: AccountCredentials, context: PublishContext
    ) -> PostOutcome:
        if not context.video_path.is_file():
            return PostOutcome(False, error=f"Video file not found: {context.video_path.name}")
        metadata = youtube_metadata(
            context.title, context.niche, context.script_text, context.include_ai_tags
        )
        async with YouTubeClient(account.access_token, http_client=self.http_client) as client:
            return await client.upload_short(context.video_path, metadata)

    async def update_manual_link(
        self,
        db: AsyncSession,
        video_id: uuid.UUID,
        actor: CurrentUser,
        platform: Platform,
        url: str,
    ) -> Video:
        """Record a post the user made themselves.

        The entry for the platform is upserted with the URL, success=true and
        manualUrl=true (other stored fields are kept) and the video becomes
        POSTED.

        Raises:
            InputValidationError: URL malformed or not a link of the platform.
            InvalidStateTransitionError: Video is not READY/SCHEDULED/POSTED.
        """
        clean_url = validate_manual_link(platform, url)
        video = await load_authorized_video(db, video_id, actor)
        if video.status not in PUBLISHABLE_STATUSES:
            raise InvalidStateTransitionError(
                "Links can only be added to ready or posted videos",
                from_status=video.status,
                to_status=VideoStatus.POSTED,
            )

        async with get_video_lock(video.id):
            entries = normalize_posted_platforms(video.posted_platforms)
            existing = next((e for e in entries if e.platform == platform), None)
            if existing is not None:
                entry = existing.model_copy(
                    update={"url": clean_url, "success": True, "manual_url": True}
                )
            else:
                entry = PlatformPostResult(
                    platform=platform, success=True, url=clean_url, manual_url=True
                )
            video.posted_platforms = posted_platforms_to_storage(
                merge_posted_platforms(entries, [entry])
            )
            video.status = VideoStatus.POSTED
            await flush_or_conflict(db, STALE_VIDEO_MESSAGE)

        log.info("manual_link_recorded", video_id=str(video.id), platform=platform.value)
        return video
