"""Activity records: the four point sources plus the content they refer to.

Timestamps are epoch seconds (UTC).
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

CHALLENGE_STATUSES = ("Completed", "Tried", "Not Completed")
ATTENDANCE_STATUSES = ("Present", "Absent", "Leave")


@dataclass(frozen=True, slots=True)
class Video:
    video_id: int
    class_number: int
    title: str
    url: str = ""


@dataclass(frozen=True, slots=True)
class VideoCompletion:
    user_id: UUID
    video_id: int
    is_completed: bool = True
    completed_at: int | None = None
    title: str | None = None  # joined from videos


@dataclass(frozen=True, slots=True)
class WatchProgress:
    user_id: UUID
    video_id: int
    watch_percentage: float = 0.0
    points_awarded: int = 0  # 0|50|100, never decreases
    last_updated: int = 0
    title: str | None = None  # joined from videos


@dataclass(frozen=True, slots=True)
class QuizGrade:
    user_id: UUID
    quiz_number: int
    grade: int
    class_number: int = 1
    total_points: int = 10
    feedback: str | None = None


@dataclass(frozen=True, slots=True)
class Challenge:
    id: int
    class_number: int
    challenge_number: int
    topic: str
    description: str | None = None
    points_completed: int | None = 10
    points_tried: int | None = 5
    points_not_completed: int = 0
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class ChallengeResponse:
    user_id: UUID
    challenge_id: int
    status: str  # Completed|Tried|Not Completed
    submitted_at: int
    # Parent challenge joined at read time; None when it has been deleted.
    challenge: Challenge | None = None


@dataclass(frozen=True, slots=True)
class AttendanceRecord:
    user_id: UUID
    class_number: int
    status: str  # Present|Absent|Leave
    session_topic: str | None = None
    date_of_class: int = 0
