"""Dashboard statistics for students and staff."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from app.core.config import SETTINGS
from app.services import leaderboard_service, points_service

if TYPE_CHECKING:
    from app.repos.registry import Repos

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 500
ADMIN_TOP_STUDENTS = 5


@dataclass(frozen=True, slots=True)
class StudentStats:
    class_number: int
    videos_watched: int
    quizzes_completed: int
    challenges_completed: int
    attendance_count: int
    total_activities: int
    completion_percentage: int
    points: int
    level: int
    level_progress: int
    rank: int | None
    total_students: int


@dataclass(frozen=True, slots=True)
class AttendanceSummary:
    present: int
    absent: int
    leave: int
    total: int
    present_percentage: int


@dataclass(frozen=True, slots=True)
class TopStudent:
    id: UUID
    name: str
    points: int
    videos_completed: int


@dataclass(frozen=True, slots=True)
class AdminOverview:
    students: int
    staff: int
    videos: int
    quizzes: int
    challenges: int
    attendance_classes: int
    top_students: list[TopStudent]


def _percent(part: int, whole: int) -> int:
    """Whole-number percentage, halves rounded up, 0 for an empty whole."""
    if whole <= 0:
        return 0
    return math.floor(part / whole * 100 + 0.5)


def level_for(points: int) -> tuple[int, int]:
    """(level, points into that level); level 1 starts at 0 points."""
    points = max(points, 0)
    return points // POINTS_PER_LEVEL + 1, points % POINTS_PER_LEVEL


async def _expected_activities(repos: Repos, class_number: int) -> int:
    videos, quizzes, challenges = await asyncio.gather(
        repos.content.list_videos(class_number),
        repos.activity.count_distinct_quizzes(),
        repos.content.list_challenges(class_number, active_only=True),
    )
    return len(videos) + quizzes + len(challenges)


async def student_stats(
    repos: Repos, user_id: UUID, class_number: int | None = None
) -> StudentStats:
    """Activity counts, points, level and rank for one student.

    Points are always computed from the activity tables.  The persisted
    total is only corrected here when RECONCILE_ON_READ is enabled.
    """
    if class_number is None:
        class_number = await repos.content.get_active_class()

    snapshot = await points_service.fetch_snapshot(repos.activity, user_id)
    points = points_service.compute_total(snapshot)

    if SETTINGS.reconcile_on_read:
        await points_service.reconcile_points(repos, user_id)

    videos = len({c.video_id for c in snapshot.completions if c.is_completed})
    quizzes = len({q.quiz_number for q in snapshot.quiz_grades})
    challenges = sum(
        1 for r in snapshot.challenge_responses if r.status != "Not Completed"
    )
    attendance = len(
        {a.class_number for a in snapshot.attendance if a.status == "Present"}
    )
    total = videos + quizzes + challenges + attendance

    expected = await _expected_activities(repos, class_number)
    completion = min(_percent(total, expected), 100)

    level, progress = level_for(points)
    rank = await leaderboard_service.rank_of(repos.profiles, user_id)

    return StudentStats(
        class_number=class_number,
        videos_watched=videos,
        quizzes_completed=quizzes,
        challenges_completed=challenges,
        attendance_count=attendance,
        total_activities=total,
        completion_percentage=completion,
        points=points,
        level=level,
        level_progress=progress,
        rank=rank.rank,
        total_students=rank.total_students,
    )


async def attendance_summary(repos: Repos, user_id: UUID) -> AttendanceSummary:
    records = await repos.activity.list_attendance(user_id)
    present = sum(1 for a in records if a.status == "Present")
    absent = sum(1 for a in records if a.status == "Absent")
    leave = sum(1 for a in records if a.status == "Leave")
    return AttendanceSummary(
        present=present,
        absent=absent,
        leave=leave,
        total=len(records),
        present_percentage=_percent(present, len(records)),
    )


async def admin_overview(repos: Repos) -> AdminOverview:
    students, staff, videos, quizzes, challenges, classes = await asyncio.gather(
        leaderboard_service.ranked_students(repos.profiles),
        repos.profiles.list_by_roles(("Admin", "Instructor")),
        repos.content.list_videos(),
        repos.activity.count_distinct_quizzes(),
        repos.content.list_challenges(),
        repos.activity.count_distinct_attendance_classes(),
    )

    top = students[:ADMIN_TOP_STUDENTS]
    completions = await asyncio.gather(
        *(repos.activity.list_video_completions(p.id) for p in top)
    )

    return AdminOverview(
        students=len(students),
        staff=len(staff),
        videos=len(videos),
        quizzes=quizzes,
        challenges=len(challenges),
        attendance_classes=classes,
        top_students=[
            TopStudent(
                id=p.id,
                name=p.name,
                points=p.points,
                videos_completed=len({c.video_id for c in done}),
            )
            for p, done in zip(top, completions, strict=True)
        ],
    )
