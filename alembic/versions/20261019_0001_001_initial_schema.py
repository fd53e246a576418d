"""001 initial orchestration schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Creates users, characters, series, automations, videos and social_accounts,
the native enum types they use, and the partial unique index that enforces
at most one QUEUED/GENERATING video per series.
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

user_role = postgresql.ENUM("USER", "ADMIN", "OWNER", name="userrole", create_type=False)
user_plan = postgresql.ENUM(
    "FREE", "STARTER", "PRO", "AGENCY", name="userplan", create_type=False
)
video_status = postgresql.ENUM(
    "QUEUED",
    "GENERATING",
    "REVIEW",
    "SCHEDULED",
    "READY",
    "POSTED",
    "FAILED",
    name="videostatus",
    create_type=False,
)
platform = postgresql.ENUM("YOUTUBE", "INSTAGRAM", "FACEBOOK", name="platform", create_type=False)

ENUMS = (user_role, user_plan, video_status, platform)


def upgrade() -> None:
    """Create enum types, tables and indexes."""
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", user_role, nullable=False, server_default="USER"),
        sa.Column("plan", user_plan, nullable=False, server_default="FREE"),
        sa.Column("default_llm_provider", sa.String(50), nullable=True),
        sa.Column("default_tts_provider", sa.String(50), nullable=True),
        sa.Column("default_image_provider", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "characters",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_characters_user_id", "characters", ["user_id"])

    op.create_table(
        "series",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("niche", sa.String(100), nullable=False),
        sa.Column("art_style", sa.String(100), nullable=False),
        sa.Column("voice_id", sa.String(100), nullable=True),
        sa.Column("tone", sa.String(50), nullable=True),
        sa.Column("language", sa.String(10), nullable=False, server_default="en"),
        sa.Column("llm_provider", sa.String(50), nullable=True),
        sa.Column("tts_provider", sa.String(50), nullable=True),
        sa.Column("image_provider", sa.String(50), nullable=True),
        sa.Column("character_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["character_id"], ["characters.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_series_user_id", "series", ["user_id"])

    op.create_table(
        "automations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("series_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("niche", sa.String(100), nullable=False),
        sa.Column("art_style", sa.String(100), nullable=False),
        sa.Column("voice_id", sa.String(100), nullable=True),
        sa.Column("language", sa.String(10), nullable=False, server_default="en"),
        sa.Column("tone", sa.String(50), nullable=False, server_default="dramatic"),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="45"),
        sa.Column("llm_provider", sa.String(50), nullable=True),
        sa.Column("tts_provider", sa.String(50), nullable=True),
        sa.Column("image_provider", sa.String(50), nullable=True),
        sa.Column("character_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("frequency", sa.String(30), nullable=False, server_default="daily"),
        sa.Column("post_times", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("target_platforms", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("include_ai_tags", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["series_id"], ["series.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["character_id"], ["characters.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("series_id", name="uq_automations_series_id"),
    )
    op.create_index("ix_automations_user_id", "automations", ["user_id"])
    op.create_index("ix_automations_enabled", "automations", ["enabled"])

    op.create_table(
        "videos",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("series_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", video_status, nullable=False, server_default="QUEUED"),
        sa.Column("generation_stage", sa.String(30), nullable=True),
        sa.Column("checkpoint_data", sa.JSON(), nullable=True),
        sa.Column("script_text", sa.Text(), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("scenes_json", sa.JSON(), nullable=True),
        sa.Column("target_duration", sa.Integer(), nullable=True),
        sa.Column("video_url", sa.String(500), nullable=True),
        sa.Column("posted_platforms", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["series_id"], ["series.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_videos_series_id", "videos", ["series_id"])
    op.create_index("ix_videos_status", "videos", ["status"])
    op.create_index("ix_videos_series_id_status", "videos", ["series_id", "status"])
    # Single-in-flight rule: at most one QUEUED/GENERATING video per series
    op.create_index(
        "uq_videos_series_in_flight",
        "videos",
        ["series_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('QUEUED', 'GENERATING')"),
    )

    op.create_table(
        "social_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("platform", platform, nullable=False),
        sa.Column("platform_user_id", sa.String(100), nullable=False),
        sa.Column("page_id", sa.String(100), nullable=True),
        sa.Column("username", sa.String(200), nullable=True),
        sa.Column("access_token_encrypted", sa.LargeBinary(), nullable=False),
        sa.Column("refresh_token_encrypted", sa.LargeBinary(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_social_accounts_user_id", "social_accounts", ["user_id"])
    op.create_index(
        "ix_social_accounts_user_platform", "social_accounts", ["user_id", "platform"]
    )


def downgrade() -> None:
    """Drop tables, then enum types."""
    op.drop_table("social_accounts")
    op.drop_index("uq_videos_series_in_flight", table_name="videos")
    op.drop_table("videos")
    op.drop_table("automations")
    op.drop_table("series")
    op.drop_table("characters")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
