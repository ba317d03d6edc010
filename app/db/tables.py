"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between rows and dataclasses; nothing outside app/repos
touches a Row class.

Table names follow the existing hosted schema (users_extended,
video_progress, manual_quiz_grades, ...) so the service can point at the
same database the web client already uses.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

# --- Profiles ---


class ProfileRow(Base):
    __tablename__ = "users_extended"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    role: Mapped[str] = mapped_column(
        String(32), nullable=False, default="Student"
    )  # Student|Instructor|Admin|Staff
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# --- Content ---


class VideoRow(Base):
    __tablename__ = "videos"

    video_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    class_number: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, default="")


class ChallengeRow(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    class_number: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    challenge_number: Mapped[int] = mapped_column(Integer, nullable=False)
    topic: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_completed: Mapped[int | None] = mapped_column(
        Integer, nullable=True, default=10
    )
    points_tried: Mapped[int | None] = mapped_column(Integer, nullable=True, default=5)
    points_not_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class DashboardConfigRow(Base):
    """Single-row table holding the active class number."""

    __tablename__ = "dashboard_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    class_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


# --- Activity sources ---


class VideoCompletionRow(Base):
    __tablename__ = "video_progress"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users_extended.id"), primary_key=True
    )
    video_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)


class WatchProgressRow(Base):
    __tablename__ = "video_watch_progress"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users_extended.id"), primary_key=True
    )
    video_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    watch_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[int] = mapped_column(Integer, nullable=False)


class QuizGradeRow(Base):
    __tablename__ = "manual_quiz_grades"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users_extended.id"), primary_key=True
    )
    quiz_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    class_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    grade: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)


class ChallengeResponseRow(Base):
    """No FK on challenge_id: responses outlive deleted challenges."""

    __tablename__ = "student_challenge_responses"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users_extended.id"), primary_key=True
    )
    challenge_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # Completed|Tried|Not Completed
    submitted_at: Mapped[int] = mapped_column(Integer, nullable=False)


class AttendanceRow(Base):
    __tablename__ = "attendance_records"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users_extended.id"), primary_key=True
    )
    class_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False
    )  # Present|Absent|Leave
    session_topic: Mapped[str | None] = mapped_column(String(500), nullable=True)
    date_of_class: Mapped[int] = mapped_column(Integer, nullable=False)


# --- Notifications ---


class NotificationRow(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users_extended.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # video|quiz|points|rank
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
