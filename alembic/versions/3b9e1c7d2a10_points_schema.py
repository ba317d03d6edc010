"""points schema: profiles, content, activity sources, notifications

Revision ID: 3b9e1c7d2a10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "3b9e1c7d2a10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users_extended.id"),
        primary_key=True,
    )


def upgrade() -> None:
    op.create_table(
        "users_extended",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("email", sa.String(320), nullable=False, server_default=""),
        sa.Column("role", sa.String(32), nullable=False, server_default="Student"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "videos",
        sa.Column("video_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("class_number", sa.Integer(), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("url", sa.Text(), nullable=False, server_default=""),
    )
    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("class_number", sa.Integer(), nullable=False, index=True),
        sa.Column("challenge_number", sa.Integer(), nullable=False),
        sa.Column("topic", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points_completed", sa.Integer(), nullable=True, server_default="10"),
        sa.Column("points_tried", sa.Integer(), nullable=True, server_default="5"),
        sa.Column(
            "points_not_completed", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "dashboard_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("class_id", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_table(
        "video_progress",
        _user_fk(),
        sa.Column("video_id", sa.Integer(), primary_key=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.Integer(), nullable=True),
    )
    op.create_table(
        "video_watch_progress",
        _user_fk(),
        sa.Column("video_id", sa.Integer(), primary_key=True),
        sa.Column("watch_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.Integer(), nullable=False),
    )
    op.create_table(
        "manual_quiz_grades",
        _user_fk(),
        sa.Column("quiz_number", sa.Integer(), primary_key=True),
        sa.Column("class_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("grade", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("feedback", sa.Text(), nullable=True),
    )
    op.create_table(
        "student_challenge_responses",
        _user_fk(),
        sa.Column("challenge_id", sa.Integer(), primary_key=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("submitted_at", sa.Integer(), nullable=False),
    )
    op.create_table(
        "attendance_records",
        _user_fk(),
        sa.Column("class_number", sa.Integer(), primary_key=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("session_topic", sa.String(500), nullable=True),
        sa.Column("date_of_class", sa.Integer(), nullable=False),
    )
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users_extended.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    for table in (
        "notifications",
        "attendance_records",
        "student_challenge_responses",
        "manual_quiz_grades",
        "video_watch_progress",
        "video_progress",
        "dashboard_config",
        "challenges",
        "videos",
        "users_extended",
    ):
        op.drop_table(table)
