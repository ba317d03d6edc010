"""Activity writes: award tiers, validation, and recompute triggers."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from app.models.activity import Challenge, ChallengeResponse, Video
from app.models.profile import UserProfile
from app.repos.registry import Repos, build_in_memory_repos
from app.services import activity_service, points_service
from app.services.activity_service import ActivityValidationError, NotFoundError
from app.services.cache import cache_service
from app.services.task_queue import POINTS_RECOMPUTE_QUEUE, task_queue


def _setup() -> tuple[Repos, UserProfile]:
    r = build_in_memory_repos()
    profile = UserProfile(id=uuid.uuid4(), name="Kim", email="kim@example.com")

    async def seed() -> None:
        await r.profiles.add(profile)
        await r.content.add_video(Video(video_id=1, class_number=1, title="Intro"))
        await r.content.add_challenge(
            Challenge(id=1, class_number=1, challenge_number=1, topic="Loops")
        )

    asyncio.run(seed())
    return r, profile


def _add_student(r: Repos, name: str) -> UserProfile:
    profile = UserProfile(
        id=uuid.uuid4(), name=name, email=f"{name.lower()}@example.com"
    )
    asyncio.run(r.profiles.add(profile))
    return profile


def _queued_users() -> list[str]:
    pending = task_queue._queues.get(POINTS_RECOMPUTE_QUEUE, [])  # type: ignore[union-attr]
    return [t.payload["user_id"] for t in pending]


# ---- watch progress ----


@pytest.mark.parametrize(
    ("percentage", "award"),
    [(0, 0), (49.9, 0), (50, 50), (99, 50), (100, 100), (140, 100)],
)
def test_award_tiers(percentage: float, award: int) -> None:
    assert activity_service.award_for(min(percentage, 100)) == award


def test_watch_award_never_decreases() -> None:
    r, p = _setup()

    awards = []
    for pct in (55, 100, 40, 60):
        result = asyncio.run(activity_service.record_watch_progress(r, p.id, 1, pct))
        awards.append(result.progress.points_awarded)

    assert awards == [50, 100, 100, 100]
    stored = asyncio.run(r.activity.get_watch_progress(p.id, 1))
    assert stored.points_awarded == 100


def test_watch_delta_credits_profile_and_notifies() -> None:
    r, p = _setup()

    first = asyncio.run(activity_service.record_watch_progress(r, p.id, 1, 50))
    second = asyncio.run(activity_service.record_watch_progress(r, p.id, 1, 100))
    repeat = asyncio.run(activity_service.record_watch_progress(r, p.id, 1, 100))

    assert (first.points_delta, second.points_delta, repeat.points_delta) == (50, 50, 0)
    assert asyncio.run(r.profiles.get(p.id)).points == 100
    notes = asyncio.run(r.notifications.list_recent(p.id))
    assert [n.type for n in notes] == ["points", "points"]


def test_watch_percentage_is_capped() -> None:
    r, p = _setup()
    result = asyncio.run(activity_service.record_watch_progress(r, p.id, 1, 250))
    assert result.progress.watch_percentage == 100


def test_watch_rejects_negative_percentage() -> None:
    r, p = _setup()
    with pytest.raises(ActivityValidationError):
        asyncio.run(activity_service.record_watch_progress(r, p.id, 1, -1))


def test_watch_unknown_video() -> None:
    r, p = _setup()
    with pytest.raises(NotFoundError):
        asyncio.run(activity_service.record_watch_progress(r, p.id, 99, 50))


# ---- completion ----


def test_complete_video_is_idempotent() -> None:
    r, p = _setup()
    assert asyncio.run(activity_service.complete_video(r, p.id, 1)) is True
    assert asyncio.run(activity_service.complete_video(r, p.id, 1)) is False

    assert len(asyncio.run(r.activity.list_video_completions(p.id))) == 1
    notes = asyncio.run(r.notifications.list_recent(p.id))
    assert [n.type for n in notes] == ["video"]


# ---- challenges ----


def test_challenge_response_overwrites_previous_status() -> None:
    r, p = _setup()
    asyncio.run(activity_service.submit_challenge_response(r, p.id, 1, "Tried"))
    asyncio.run(activity_service.submit_challenge_response(r, p.id, 1, "Completed"))

    [response] = asyncio.run(r.activity.list_challenge_responses(p.id))
    assert response.status == "Completed"
    assert response.challenge is not None


def test_challenge_response_rejects_unknown_status() -> None:
    r, p = _setup()
    with pytest.raises(ActivityValidationError):
        asyncio.run(activity_service.submit_challenge_response(r, p.id, 1, "Done"))


def test_challenge_response_rejects_inactive_challenge() -> None:
    r, p = _setup()
    asyncio.run(r.content.update_challenge(1, {"is_active": False}))
    with pytest.raises(ActivityValidationError, match="not active"):
        asyncio.run(activity_service.submit_challenge_response(r, p.id, 1, "Tried"))


def test_update_challenge_revalues_and_queues_responders() -> None:
    r, p = _setup()
    asyncio.run(
        r.activity.upsert_challenge_response(
            ChallengeResponse(user_id=p.id, challenge_id=1, status="Completed", submitted_at=1)
        )
    )
    asyncio.run(cache_service.set("ledger:someone-else", "[]", 300))

    updated = asyncio.run(
        activity_service.update_challenge(r, 1, {"points_completed": 25})
    )

    assert updated.points_completed == 25
    assert _queued_users() == [str(p.id)]
    assert asyncio.run(cache_service.get("ledger:someone-else")) is None
    assert asyncio.run(points_service.compute_points(r.activity, p.id)) == 25


def test_update_challenge_rejects_unknown_fields() -> None:
    r, _ = _setup()
    with pytest.raises(ActivityValidationError):
        asyncio.run(activity_service.update_challenge(r, 1, {"id": 5}))


def test_update_missing_challenge() -> None:
    r, _ = _setup()
    with pytest.raises(NotFoundError):
        asyncio.run(activity_service.update_challenge(r, 42, {"topic": "x"}))


# ---- staff bulk writes ----


def test_grade_quiz_validates_range() -> None:
    r, p = _setup()
    with pytest.raises(ActivityValidationError):
        asyncio.run(
            activity_service.grade_quiz(
                r, class_number=1, quiz_number=1, grades={p.id: 11}, total_points=10
            )
        )


def test_grade_quiz_queues_each_student_once() -> None:
    r, p = _setup()
    other = _add_student(r, "Lee").id

    queued = asyncio.run(
        activity_service.grade_quiz(
            r,
            class_number=1,
            quiz_number=3,
            grades={p.id: 10, other: 5},
            feedback={p.id: "Nice"},
        )
    )

    assert queued == 2
    assert sorted(_queued_users()) == sorted([str(p.id), str(other)])
    [grade] = asyncio.run(r.activity.list_quiz_grades(p.id))
    assert (grade.grade, grade.feedback) == (10, "Nice")


def test_delete_quiz_requeues_affected_students() -> None:
    r, p = _setup()
    asyncio.run(
        activity_service.grade_quiz(r, class_number=1, quiz_number=2, grades={p.id: 5})
    )
    task_queue._queues.clear()  # type: ignore[union-attr]

    assert asyncio.run(activity_service.delete_quiz(r, 2)) == 1
    assert asyncio.run(r.activity.list_quiz_grades(p.id)) == []
    assert _queued_users() == [str(p.id)]


def test_mark_attendance_and_delete_class() -> None:
    r, p = _setup()
    other = _add_student(r, "Lee").id
    asyncio.run(
        activity_service.mark_attendance(
            r,
            class_number=4,
            statuses={p.id: "Present", other: "Absent"},
            session_topic="Recursion",
            date_of_class=123,
        )
    )

    [record] = asyncio.run(r.activity.list_attendance(p.id))
    assert (record.status, record.session_topic, record.date_of_class) == (
        "Present",
        "Recursion",
        123,
    )

    assert asyncio.run(activity_service.delete_attendance(r, 4)) == 2
    assert asyncio.run(r.activity.list_attendance(p.id)) == []


def test_mark_attendance_rejects_unknown_status() -> None:
    r, p = _setup()
    with pytest.raises(ActivityValidationError):
        asyncio.run(
            activity_service.mark_attendance(r, class_number=1, statuses={p.id: "Late"})
        )


def test_writes_invalidate_cached_ledger() -> None:
    r, p = _setup()
    key = points_service.ledger_cache_key(p.id)
    asyncio.run(cache_service.set(key, "[]", 300))

    asyncio.run(activity_service.complete_video(r, p.id, 1))

    assert asyncio.run(cache_service.get(key)) is None


# ---- unknown users ----


def test_student_writes_require_a_profile() -> None:
    r, _ = _setup()
    stranger = uuid.uuid4()

    for write in (
        activity_service.record_watch_progress(r, stranger, 1, 60),
        activity_service.complete_video(r, stranger, 1),
        activity_service.submit_challenge_response(r, stranger, 1, "Completed"),
    ):
        with pytest.raises(NotFoundError, match="profile not found"):
            asyncio.run(write)

    assert asyncio.run(r.notifications.list_recent(stranger)) == []
    assert _queued_users() == []


def test_grade_quiz_rejects_unknown_student_and_writes_nothing() -> None:
    r, p = _setup()
    stranger = uuid.uuid4()

    with pytest.raises(NotFoundError, match=str(stranger)):
        asyncio.run(
            activity_service.grade_quiz(
                r, class_number=1, quiz_number=1, grades={p.id: 10, stranger: 5}
            )
        )

    assert asyncio.run(r.activity.list_quiz_grades(p.id)) == []
    assert _queued_users() == []


def test_mark_attendance_rejects_unknown_student() -> None:
    r, p = _setup()
    with pytest.raises(NotFoundError):
        asyncio.run(
            activity_service.mark_attendance(
                r, class_number=1, statuses={p.id: "Present", uuid.uuid4(): "Absent"}
            )
        )
    assert asyncio.run(r.activity.list_attendance(p.id)) == []
