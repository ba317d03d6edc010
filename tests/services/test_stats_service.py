from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace

import pytest

from app.core.config import SETTINGS
from app.models.activity import (
    AttendanceRecord,
    Challenge,
    ChallengeResponse,
    QuizGrade,
    Video,
    VideoCompletion,
)
from app.models.profile import UserProfile
from app.repos.registry import Repos, build_in_memory_repos
from app.services import stats_service


def _seed() -> tuple[Repos, UserProfile]:
    r = build_in_memory_repos()
    me = UserProfile(id=uuid.uuid4(), name="Me", email="", points=0)
    rival = UserProfile(id=uuid.uuid4(), name="Rival", email="", points=1000)

    async def seed() -> None:
        await r.profiles.add(me)
        await r.profiles.add(rival)
        await r.profiles.add(UserProfile(id=uuid.uuid4(), name="T", email="", role="Instructor"))
        for vid in (1, 2, 3):
            await r.content.add_video(Video(video_id=vid, class_number=1, title=f"V{vid}"))
        await r.content.add_video(Video(video_id=4, class_number=2, title="V4"))
        await r.content.add_challenge(
            Challenge(id=1, class_number=1, challenge_number=1, topic="A")
        )
        await r.content.add_challenge(
            Challenge(id=2, class_number=1, challenge_number=2, topic="B", is_active=False)
        )
        await r.activity.upsert_video_completion(
            VideoCompletion(user_id=me.id, video_id=1, completed_at=1)
        )
        await r.activity.upsert_quiz_grades(
            [
                QuizGrade(user_id=me.id, quiz_number=1, grade=10),
                QuizGrade(user_id=rival.id, quiz_number=2, grade=5),
            ]
        )
        await r.activity.upsert_challenge_response(
            ChallengeResponse(user_id=me.id, challenge_id=1, status="Completed", submitted_at=1)
        )
        await r.activity.upsert_attendance(
            [
                AttendanceRecord(user_id=me.id, class_number=1, status="Present"),
                AttendanceRecord(user_id=me.id, class_number=2, status="Leave"),
                AttendanceRecord(user_id=me.id, class_number=3, status="Absent"),
            ]
        )

    asyncio.run(seed())
    return r, me


def test_student_stats_counts_and_points() -> None:
    r, me = _seed()

    stats = asyncio.run(stats_service.student_stats(r, me.id))

    assert stats.class_number == 1
    assert stats.videos_watched == 1
    assert stats.quizzes_completed == 1
    assert stats.challenges_completed == 1
    assert stats.attendance_count == 1
    assert stats.total_activities == 4
    # expected = 3 videos in class 1 + 2 distinct quizzes + 1 active challenge
    assert stats.completion_percentage == 67
    assert stats.points == 100 + 10 + 10 + 100
    assert (stats.level, stats.level_progress) == (1, 220)
    assert (stats.rank, stats.total_students) == (2, 2)


def test_student_stats_is_read_only_by_default() -> None:
    r, me = _seed()
    asyncio.run(stats_service.student_stats(r, me.id))
    assert asyncio.run(r.profiles.get(me.id)).points == 0


def test_student_stats_reconciles_when_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    r, me = _seed()
    monkeypatch.setattr(
        stats_service, "SETTINGS", replace(SETTINGS, reconcile_on_read=True)
    )
    asyncio.run(stats_service.student_stats(r, me.id))
    assert asyncio.run(r.profiles.get(me.id)).points == 220


def test_completion_percentage_is_capped_and_safe_on_empty_class() -> None:
    r, me = _seed()
    empty = asyncio.run(stats_service.student_stats(r, me.id, class_number=9))
    # only the two distinct quizzes are expected in class 9
    assert empty.completion_percentage == 100

    r2 = build_in_memory_repos()
    lonely = asyncio.run(stats_service.student_stats(r2, uuid.uuid4()))
    assert lonely.completion_percentage == 0


@pytest.mark.parametrize(
    ("points", "level", "progress"),
    [(0, 1, 0), (499, 1, 499), (500, 2, 0), (1234, 3, 234)],
)
def test_level_for(points: int, level: int, progress: int) -> None:
    assert stats_service.level_for(points) == (level, progress)


def test_attendance_summary() -> None:
    r, me = _seed()
    summary = asyncio.run(stats_service.attendance_summary(r, me.id))
    assert (summary.present, summary.absent, summary.leave, summary.total) == (1, 1, 1, 3)
    assert summary.present_percentage == 33


def test_admin_overview() -> None:
    r, me = _seed()

    o = asyncio.run(stats_service.admin_overview(r))

    assert (o.students, o.staff, o.videos, o.quizzes, o.challenges) == (2, 1, 4, 2, 2)
    assert o.attendance_classes == 3
    assert [t.name for t in o.top_students] == ["Rival", "Me"]
    assert [t.videos_completed for t in o.top_students] == [0, 1]
