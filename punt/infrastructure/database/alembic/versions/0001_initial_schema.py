"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-01-15 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=64), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _project_fk() -> sa.Column:
    return sa.Column(
        "project_id",
        sa.String(length=64),
        sa.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("username", sa.String(length=64), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("avatar", sa.String(length=512)),
        sa.Column("password_hash", sa.Text()),
        sa.Column("password_changed_at", sa.DateTime(timezone=True)),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
        sa.Column("email_verified", sa.DateTime(timezone=True)),
        sa.Column("is_system_admin", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("totp_enabled", sa.Boolean(), nullable=False),
        sa.Column("totp_secret", sa.Text()),
        sa.Column("totp_recovery_codes", sa.JSON()),
        sa.Column("mcp_api_key", sa.String(length=128), unique=True),
        *_timestamps(),
    )

    op.create_table(
        "sessions",
        sa.Column("session_id", sa.String(length=128), primary_key=True, index=True),
        sa.Column("data", sa.Text(), nullable=False),
        sa.Column(
            "expires_at", sa.DateTime(timezone=True), nullable=False, index=True
        ),
        sa.Column("fingerprint", sa.String(length=64), nullable=False),
        sa.Column("csrf_token", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True, index=True),
        *_timestamps(),
    )

    op.create_table(
        "system_settings",
        _id(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by", sa.String(length=64)),
        sa.Column("app_name", sa.String(length=255), nullable=False),
        sa.Column("logo_url", sa.String(length=512)),
        sa.Column("logo_letter", sa.String(length=8), nullable=False),
        sa.Column("logo_gradient_from", sa.String(length=16), nullable=False),
        sa.Column("logo_gradient_to", sa.String(length=16), nullable=False),
        sa.Column("max_image_size_mb", sa.Integer(), nullable=False),
        sa.Column("max_video_size_mb", sa.Integer(), nullable=False),
        sa.Column("max_document_size_mb", sa.Integer(), nullable=False),
        sa.Column("max_attachments_per_ticket", sa.Integer(), nullable=False),
        sa.Column("allowed_image_types", sa.Text(), nullable=False),
        sa.Column("allowed_video_types", sa.Text(), nullable=False),
        sa.Column("allowed_document_types", sa.Text(), nullable=False),
        sa.Column("email_enabled", sa.Boolean(), nullable=False),
        sa.Column("email_provider", sa.String(length=32), nullable=False),
        sa.Column("email_from_address", sa.String(length=255), nullable=False),
        sa.Column("email_from_name", sa.String(length=255), nullable=False),
        sa.Column("smtp_host", sa.String(length=255), nullable=False),
        sa.Column("smtp_port", sa.Integer(), nullable=False),
        sa.Column("smtp_username", sa.String(length=255), nullable=False),
        sa.Column("smtp_secure", sa.Boolean(), nullable=False),
        sa.Column("email_password_reset", sa.Boolean(), nullable=False),
        sa.Column("email_welcome", sa.Boolean(), nullable=False),
        sa.Column("email_verification", sa.Boolean(), nullable=False),
        sa.Column("email_invitations", sa.Boolean(), nullable=False),
        sa.Column("default_role_permissions", sa.Text()),
    )

    op.create_table(
        "rate_limits",
        _id(),
        sa.Column("identifier", sa.String(length=255), nullable=False),
        sa.Column("endpoint", sa.String(length=64), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("identifier", "endpoint"),
    )

    op.create_table(
        "projects",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("key", sa.String(length=10), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("color", sa.String(length=16), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "roles",
        _id(),
        _project_fk(),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("permissions", sa.Text(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "name"),
    )

    op.create_table(
        "columns",
        _id(),
        _project_fk(),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
    )

    op.create_table(
        "labels",
        _id(),
        _project_fk(),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=False),
        sa.UniqueConstraint("project_id", "name"),
    )

    op.create_table(
        "project_members",
        _id(),
        _project_fk(),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "role_id",
            sa.String(length=64),
            sa.ForeignKey("roles.id"),
            nullable=False,
        ),
        sa.Column("overrides", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "user_id"),
    )

    op.create_table(
        "project_sprint_settings",
        _id(),
        sa.Column(
            "project_id",
            sa.String(length=64),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("default_sprint_duration", sa.Integer(), nullable=False),
        sa.Column("auto_carry_over_incomplete", sa.Boolean(), nullable=False),
        sa.Column("done_column_ids", sa.Text(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "invitations",
        _id(),
        _project_fk(),
        sa.Column(
            "sender_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=64), nullable=False),
        sa.Column("token", sa.String(length=128), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "sprints",
        _id(),
        _project_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("goal", sa.Text()),
        sa.Column("start_date", sa.DateTime(timezone=True)),
        sa.Column("end_date", sa.DateTime(timezone=True)),
        sa.Column("budget", sa.Integer()),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column(
            "completed_by_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        sa.Column("completed_ticket_count", sa.Integer()),
        sa.Column("incomplete_ticket_count", sa.Integer()),
        sa.Column("completed_story_points", sa.Integer()),
        sa.Column("incomplete_story_points", sa.Integer()),
        *_timestamps(),
    )

    op.create_table(
        "tickets",
        _id(),
        _project_fk(),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("story_points", sa.Integer()),
        sa.Column("estimate", sa.String(length=64)),
        sa.Column("start_date", sa.DateTime(timezone=True)),
        sa.Column("due_date", sa.DateTime(timezone=True)),
        sa.Column("environment", sa.String(length=255)),
        sa.Column("affected_version", sa.String(length=64)),
        sa.Column("fix_version", sa.String(length=64)),
        sa.Column(
            "column_id",
            sa.String(length=64),
            sa.ForeignKey("columns.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "assignee_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "creator_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "sprint_id",
            sa.String(length=64),
            sa.ForeignKey("sprints.id", ondelete="SET NULL"),
            index=True,
        ),
        sa.Column("is_carried_over", sa.Boolean(), nullable=False),
        sa.Column(
            "carried_from_sprint_id",
            sa.String(length=64),
            sa.ForeignKey("sprints.id", ondelete="SET NULL"),
        ),
        sa.Column("carried_over_count", sa.Integer(), nullable=False),
        sa.Column(
            "parent_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "number"),
    )

    op.create_table(
        "ticket_labels",
        sa.Column(
            "ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "label_id",
            sa.String(length=64),
            sa.ForeignKey("labels.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "ticket_links",
        _id(),
        sa.Column("link_type", sa.String(length=32), nullable=False),
        sa.Column(
            "from_ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "to_ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("from_ticket_id", "to_ticket_id", "link_type"),
    )

    op.create_table(
        "ticket_watchers",
        _id(),
        sa.Column(
            "ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("ticket_id", "user_id"),
    )

    op.create_table(
        "comments",
        _id(),
        sa.Column(
            "ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "author_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "ticket_edits",
        _id(),
        sa.Column(
            "ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("field", sa.String(length=64), nullable=False),
        sa.Column("old_value", sa.Text()),
        sa.Column("new_value", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "attachments",
        _id(),
        sa.Column(
            "ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "uploader_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("url", sa.String(length=512), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "ticket_sprint_history",
        _id(),
        sa.Column(
            "ticket_id",
            sa.String(length=64),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "sprint_id",
            sa.String(length=64),
            sa.ForeignKey("sprints.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("removed_at", sa.DateTime(timezone=True)),
        sa.Column("entry_type", sa.String(length=16), nullable=False),
        sa.Column("exit_status", sa.String(length=16)),
        sa.Column(
            "carried_from_sprint_id",
            sa.String(length=64),
            sa.ForeignKey("sprints.id", ondelete="SET NULL"),
        ),
    )


def downgrade() -> None:
    for table in (
        "ticket_sprint_history",
        "attachments",
        "ticket_edits",
        "comments",
        "ticket_watchers",
        "ticket_links",
        "ticket_labels",
        "tickets",
        "sprints",
        "invitations",
        "project_sprint_settings",
        "project_members",
        "labels",
        "columns",
        "roles",
        "projects",
        "rate_limits",
        "system_settings",
        "sessions",
        "users",
    ):
        op.drop_table(table)
