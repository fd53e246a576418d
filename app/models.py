"""SQLAlchemy 2.0 ORM models.

This module contains all SQLAlchemy models for the orchestration layer.
All models use the Mapped[type] annotation pattern required by SQLAlchemy 2.0.

Ownership:
    User ──< Series ──< Video
              │
              └── 0..1 Automation
    User ──< Character, SocialAccount

    Users are owned by the authentication subsystem; only the columns the
    orchestration layer reads (role, plan, provider defaults) are mapped here.

Encrypted Fields Pattern:
    Social platform tokens are stored encrypted using Fernet symmetric
    encryption. Encrypted columns follow the naming convention
    `{field}_encrypted` and use LargeBinary type since Fernet outputs bytes.

    NEVER expose encrypted fields in __repr__ or log statements.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from app.exceptions import InvalidStateTransitionError


def utcnow() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class VideoStatus(enum.Enum):
    """Video lifecycle states (wire values are the uppercase names).

    Flow (Happy Path):
        QUEUED → GENERATING → REVIEW → GENERATING → READY → POSTED

    REVIEW is a suspend point: images and audio exist, final assembly waits
    for a human to pick scenes. FAILED is reachable from QUEUED or GENERATING
    (worker failure or user stop). SCHEDULED is an alternate pre-publish state.
    """

    QUEUED = "QUEUED"
    GENERATING = "GENERATING"
    REVIEW = "REVIEW"
    SCHEDULED = "SCHEDULED"
    READY = "READY"
    POSTED = "POSTED"
    FAILED = "FAILED"


# Statuses covered by the single-in-flight rule (at most one per series)
IN_FLIGHT_STATUSES = (VideoStatus.QUEUED, VideoStatus.GENERATING)

# Statuses from which a video may be published or have its posts reset
PUBLISHABLE_STATUSES = (VideoStatus.READY, VideoStatus.SCHEDULED, VideoStatus.POSTED)

# Statuses from which retry is legal
RETRYABLE_STATUSES = (VideoStatus.FAILED, VideoStatus.QUEUED)

STOPPED_BY_USER_MESSAGE = "Stopped by user"


class GenerationStage(str, enum.Enum):
    """Progress labels stored in Video.generation_stage while GENERATING."""

    SCRIPT = "SCRIPT"
    TTS = "TTS"
    IMAGES = "IMAGES"
    ASSEMBLY = "ASSEMBLY"
    UPLOADING = "UPLOADING"


class UserRole(enum.Enum):
    """Caller roles. OWNER and ADMIN may act on records they do not own."""

    USER = "USER"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


class UserPlan(enum.Enum):
    """Subscription plans (drive monthly video limits)."""

    FREE = "FREE"
    STARTER = "STARTER"
    PRO = "PRO"
    AGENCY = "AGENCY"


class Platform(enum.Enum):
    """Social publishing destinations."""

    YOUTUBE = "YOUTUBE"
    INSTAGRAM = "INSTAGRAM"
    FACEBOOK = "FACEBOOK"


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    # values_callable stores enum .value, matching the wire format
    return Enum(
        enum_cls,
        native_enum=True,
        name=name,
        values_callable=lambda x: [e.value for e in x],
    )


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class User(Base):
    """Account record owned by the authentication subsystem.

    Attributes:
        id: User UUID (shared with the auth subsystem).
        email: Login email, informational only here.
        role: USER, ADMIN or OWNER.
        plan: Subscription plan.
        default_llm_provider: Saved default for the llm capability (nullable).
        default_tts_provider: Saved default for the tts capability (nullable).
        default_image_provider: Saved default for the image capability (nullable).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "userrole"), nullable=False, default=UserRole.USER
    )
    plan: Mapped[UserPlan] = mapped_column(
        _enum_column(UserPlan, "userplan"), nullable=False, default=UserPlan.FREE
    )
    default_llm_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    default_tts_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    default_image_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id!s:.8}, role={self.role.value!r}, plan={self.plan.value!r})>"


class Character(Base):
    """Reusable subject description bound to series/automations by id."""

    __tablename__ = "characters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Character(id={self.id!s:.8}, name={self.name!r})>"


class Series(Base):
    """Channel configuration grouping the videos it produces.

    Provider columns are per-series overrides; None means "use the owner's
    default, then the system fallback" (see provider_resolver).

    Deleting a series cascades to its videos (rows here, artifacts on disk via
    series_service.delete_series).
    """

    __tablename__ = "series"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    niche: Mapped[str] = mapped_column(String(100), nullable=False)
    art_style: Mapped[str] = mapped_column(String(100), nullable=False)
    voice_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    llm_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tts_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    image_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    character_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("characters.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped["User"] = relationship("User")
    videos: Mapped[list["Video"]] = relationship(
        "Video", back_populates="series", cascade="all, delete-orphan"
    )
    automation: Mapped["Automation | None"] = relationship(
        "Automation", back_populates="series", uselist=False
    )

    def __repr__(self) -> str:
        return f"<Series(id={self.id!s:.8}, name={self.name!r}, niche={self.niche!r})>"


class Automation(Base):
    """Recurring-generation configuration bound lazily to one Series.

    Schedule fields (frequency, post_times, timezone) are evaluated by the
    external scheduler through automation_service.is_due(). Changing any of
    them must clear last_run_at, otherwise the next pass can be skipped by the
    frequency threshold.
    """

    __tablename__ = "automations"

    SCHEDULE_FIELDS = ("frequency", "post_times", "timezone")

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    series_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("series.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    niche: Mapped[str] = mapped_column(String(100), nullable=False)
    art_style: Mapped[str] = mapped_column(String(100), nullable=False)
    voice_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    tone: Mapped[str] = mapped_column(String(50), nullable=False, default="dramatic")
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=45)
    llm_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tts_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    image_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    character_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("characters.id", ondelete="SET NULL"), nullable=True
    )
    frequency: Mapped[str] = mapped_column(String(30), nullable=False, default="daily")
    post_times: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    target_platforms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    include_ai_tags: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped["User"] = relationship("User")
    series: Mapped["Series | None"] = relationship("Series", back_populates="automation")
    character: Mapped["Character | None"] = relationship("Character")

    def __repr__(self) -> str:
        return (
            f"<Automation(id={self.id!s:.8}, name={self.name!r}, "
            f"frequency={self.frequency!r}, enabled={self.enabled})>"
        )


class Video(Base):
    """One generation job and its resulting artifact.

    Status Workflow:
        The status field follows VideoStatus; VALID_TRANSITIONS lists every
        legal move and is enforced by the @validates hook below. Lifecycle
        services additionally check the precondition of each action so that
        e.g. "retry a READY video" fails with a precise message.

    Single-In-Flight Rule:
        At most one video per series may be QUEUED or GENERATING. Services
        check before inserting, and the partial unique index
        uq_videos_series_in_flight makes a lost race fail as IntegrityError.

    Optimistic Locking:
        `version` is the mapper's version_id_col: every UPDATE carries
        "WHERE version = <loaded>" and bumps it, so two concurrent
        read-modify-write cycles on checkpoint_data cannot both succeed.

    Attributes:
        series_id: Owning series (exclusive ownership).
        status: Lifecycle status.
        generation_stage: Progress label within GENERATING (nullable).
        checkpoint_data: Serialized checkpoint (see app.schemas.checkpoint).
        script_text: Full narration script.
        title: Video title.
        scenes_json: Ordered [{"text", "visualDescription"}] scenes, persisted so
            retries need not call the script generator again.
        target_duration: Requested duration in seconds.
        video_url: Public path of the assembled file (nullable until READY).
        posted_platforms: Publish outcome entries, one per platform.
        error_message: Last failure message (classified, user facing).
    """

    __tablename__ = "videos"

    VALID_TRANSITIONS = {
        VideoStatus.QUEUED: [VideoStatus.QUEUED, VideoStatus.GENERATING, VideoStatus.FAILED],
        VideoStatus.GENERATING: [
            VideoStatus.GENERATING,
            VideoStatus.REVIEW,
            VideoStatus.READY,
            VideoStatus.FAILED,
        ],
        # Suspend point: only the assemble action resumes it
        VideoStatus.REVIEW: [VideoStatus.GENERATING],
        VideoStatus.READY: [VideoStatus.READY, VideoStatus.SCHEDULED, VideoStatus.POSTED],
        VideoStatus.SCHEDULED: [VideoStatus.READY, VideoStatus.POSTED],
        VideoStatus.POSTED: [VideoStatus.POSTED, VideoStatus.READY],
        VideoStatus.FAILED: [VideoStatus.QUEUED],
    }

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    series_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("series.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[VideoStatus] = mapped_column(
        _enum_column(VideoStatus, "videostatus"),
        nullable=False,
        default=VideoStatus.QUEUED,
        index=True,
    )
    generation_stage: Mapped[str | None] = mapped_column(String(30), nullable=True)
    checkpoint_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    script_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scenes_json: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    target_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    posted_platforms: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    series: Mapped["Series"] = relationship("Series", back_populates="videos")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_videos_series_id_status", "series_id", "status"),
        Index(
            "uq_videos_series_in_flight",
            "series_id",
            unique=True,
            postgresql_where=text("status IN ('QUEUED', 'GENERATING')"),
            sqlite_where=text("status IN ('QUEUED', 'GENERATING')"),
        ),
    )

    @validates("status")
    def validate_status_change(self, key: str, value: VideoStatus) -> VideoStatus:
        """Validate status transition before it reaches the database.

        Validation is skipped on initial creation (status is None).

        Raises:
            InvalidStateTransitionError: If the transition is not listed in
                VALID_TRANSITIONS.
        """
        if self.status is None:
            return value

        allowed_transitions = self.VALID_TRANSITIONS.get(self.status, [])
        if value not in allowed_transitions:
            raise InvalidStateTransitionError(
                f"Invalid transition: {self.status.value} → {value.value}",
                from_status=self.status,
                to_status=value,
            )

        return value

    @property
    def is_in_flight(self) -> bool:
        """True while the video counts against the single-in-flight rule."""
        return self.status in IN_FLIGHT_STATUSES

    @property
    def is_cancelled(self) -> bool:
        """True when a user stop (not a pipeline failure) ended this video."""
        return (
            self.status == VideoStatus.FAILED
            and self.error_message == STOPPED_BY_USER_MESSAGE
        )

    def __repr__(self) -> str:
        return (
            f"<Video(id={self.id!s:.8}, title={self.title!r}, "
            f"status={self.status.value!r}, stage={self.generation_stage!r})>"
        )


class SocialAccount(Base):
    """Connected platform credential owned by a user.

    Token acquisition and refresh happen elsewhere; this layer only decrypts
    and uses the stored access token at publish time.

    Attributes:
        platform: Destination platform.
        platform_user_id: Channel / IG user id on the platform.
        page_id: Facebook page id (Facebook only; falls back to platform_user_id).
        username: Display identity.
        access_token_encrypted: Fernet-encrypted access token.
        refresh_token_encrypted: Fernet-encrypted refresh token (nullable).
        token_expires_at: Access token expiry (nullable).
    """

    __tablename__ = "social_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[Platform] = mapped_column(_enum_column(Platform, "platform"), nullable=False)
    platform_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    page_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    username: Mapped[str | None] = mapped_column(String(200), nullable=True)
    access_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    refresh_token_encrypted: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_social_accounts_user_platform", "user_id", "platform"),)

    def __repr__(self) -> str:
        """Return string representation for debugging.

        Note:
            NEVER expose encrypted fields in repr - security risk.
        """
        return (
            f"<SocialAccount(platform={self.platform.value!r}, "
            f"username={self.username!r}, platform_user_id={self.platform_user_id!r})>"
        )
