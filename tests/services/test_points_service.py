"""Points aggregation: totals, ledger merge rules, and reconciliation."""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import replace

import pytest
from prometheus_client import REGISTRY

from app.models.activity import (
    AttendanceRecord,
    Challenge,
    ChallengeResponse,
    QuizGrade,
    Video,
    VideoCompletion,
    WatchProgress,
)
from app.models.profile import UserProfile
from app.repos.activity_repo import InMemoryActivityRepo
from app.repos.profile_repo import InMemoryProfileRepo
from app.repos.registry import Repos, build_in_memory_repos
from app.services import points_service
from app.services.cache import cache_service
from app.services.points_service import (
    ActivitySnapshot,
    ReconcileOutcome,
    build_ledger,
    compute_breakdown,
    compute_total,
)

NOW = 1_700_000_000
USER = uuid.uuid4()


def _snapshot(**sources) -> ActivitySnapshot:
    base = {
        "completions": [],
        "watch_progress": [],
        "quiz_grades": [],
        "challenge_responses": [],
        "attendance": [],
    }
    base.update(sources)
    return ActivitySnapshot(**base)


def _challenge(points_completed=10, points_tried=5) -> Challenge:
    return Challenge(
        id=1,
        class_number=1,
        challenge_number=1,
        topic="Loops",
        points_completed=points_completed,
        points_tried=points_tried,
    )


def _response(status: str, challenge: Challenge | None, challenge_id: int = 1):
    return ChallengeResponse(
        user_id=USER,
        challenge_id=challenge_id,
        status=status,
        submitted_at=NOW - 10,
        challenge=challenge,
    )


def _attendance(class_number: int, status: str) -> AttendanceRecord:
    return AttendanceRecord(
        user_id=USER,
        class_number=class_number,
        status=status,
        date_of_class=NOW - 1000 * class_number,
    )


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


# ---- pure totals ----


def test_total_is_stable_across_recomputation() -> None:
    snap = _snapshot(
        completions=[VideoCompletion(user_id=USER, video_id=1, completed_at=NOW)],
        quiz_grades=[QuizGrade(user_id=USER, quiz_number=1, grade=5)],
        challenge_responses=[_response("Completed", _challenge())],
        attendance=[_attendance(1, "Present")],
    )
    assert compute_total(snap) == compute_total(snap) == 215


def test_end_to_end_total_matches_sum_of_sources() -> None:
    snap = _snapshot(
        completions=[
            VideoCompletion(user_id=USER, video_id=1, completed_at=NOW),
            VideoCompletion(user_id=USER, video_id=2, completed_at=NOW),
        ],
        quiz_grades=[QuizGrade(user_id=USER, quiz_number=1, grade=10)],
        challenge_responses=[_response("Tried", _challenge(points_tried=5))],
        attendance=[_attendance(1, "Present")],
    )
    breakdown = compute_breakdown(snap)
    assert (breakdown.video, breakdown.quiz, breakdown.challenge, breakdown.attendance) == (
        200,
        10,
        5,
        100,
    )
    assert breakdown.total == 315


def test_duplicate_completion_rows_count_once() -> None:
    row = VideoCompletion(user_id=USER, video_id=7, completed_at=NOW)
    assert compute_total(_snapshot(completions=[row, row])) == 100


def test_watch_progress_alone_does_not_add_to_total() -> None:
    snap = _snapshot(
        watch_progress=[
            WatchProgress(user_id=USER, video_id=3, points_awarded=50, last_updated=NOW)
        ]
    )
    assert compute_total(snap) == 0


def test_not_completed_challenge_is_worth_zero() -> None:
    snap = _snapshot(challenge_responses=[_response("Not Completed", _challenge())])
    assert compute_total(snap) == 0


@pytest.mark.parametrize(
    ("status", "expected"),
    [("Completed", 10), ("Tried", 5)],
)
def test_orphaned_response_uses_fallback_points(status: str, expected: int) -> None:
    snap = _snapshot(challenge_responses=[_response(status, None)])
    assert compute_total(snap) == expected


def test_missing_point_value_uses_fallback() -> None:
    snap = _snapshot(
        challenge_responses=[_response("Completed", _challenge(points_completed=None))]
    )
    assert compute_total(snap) == 10


def test_zero_point_challenge_is_worth_zero() -> None:
    snap = _snapshot(
        challenge_responses=[_response("Completed", _challenge(points_completed=0))]
    )
    assert compute_total(snap) == 0


def test_leave_attendance_is_in_history_but_not_in_total() -> None:
    snap = _snapshot(
        attendance=[
            _attendance(1, "Present"),
            _attendance(2, "Leave"),
            _attendance(3, "Absent"),
        ]
    )
    assert compute_breakdown(snap).attendance == 100

    ledger = build_ledger(snap, now=NOW)
    assert [e.id for e in ledger] == ["attendance-1", "attendance-2"]
    assert [e.points for e in ledger] == [100, 0]


# ---- ledger ----


def test_completion_and_watch_rows_merge_into_one_entry() -> None:
    snap = _snapshot(
        completions=[
            VideoCompletion(user_id=USER, video_id=7, completed_at=NOW - 500, title="Intro")
        ],
        watch_progress=[
            WatchProgress(
                user_id=USER,
                video_id=7,
                watch_percentage=60,
                points_awarded=50,
                last_updated=NOW - 100,
                title="Intro",
            )
        ],
    )
    ledger = build_ledger(snap, now=NOW)
    assert len(ledger) == 1
    entry = ledger[0]
    assert entry.id == "video-7"
    assert entry.points == 100
    assert entry.occurred_at == NOW - 100
    assert entry.title == "Intro"


def test_watch_only_video_keeps_its_award() -> None:
    snap = _snapshot(
        watch_progress=[
            WatchProgress(user_id=USER, video_id=4, points_awarded=50, last_updated=NOW)
        ]
    )
    [entry] = build_ledger(snap, now=NOW)
    assert entry.points == 50
    assert entry.title == "Video 4"


def test_quiz_rows_use_now_and_skip_zero_grades() -> None:
    snap = _snapshot(
        quiz_grades=[
            QuizGrade(user_id=USER, quiz_number=1, grade=10, feedback="Great"),
            QuizGrade(user_id=USER, quiz_number=2, grade=0),
            QuizGrade(user_id=USER, quiz_number=3, grade=5),
        ]
    )
    ledger = build_ledger(snap, now=NOW)
    assert {e.id for e in ledger} == {"quiz-1", "quiz-3"}
    titles = {e.id: e.title for e in ledger}
    assert titles["quiz-1"] == "Quiz 1: Great"
    assert titles["quiz-3"] == "Quiz 3: Assessment"
    assert all(e.occurred_at == NOW for e in ledger)


def test_challenge_rows_exclude_not_completed() -> None:
    snap = _snapshot(
        challenge_responses=[
            _response("Completed", _challenge(), challenge_id=1),
            _response("Not Completed", replace(_challenge(), id=2), challenge_id=2),
            _response("Tried", None, challenge_id=3),
        ]
    )
    ledger = build_ledger(snap, now=NOW)
    assert {e.id: (e.title, e.points) for e in ledger} == {
        "challenge-1": ("Loops", 10),
        "challenge-3": ("Challenge", 5),
    }


def test_ledger_is_sorted_newest_first() -> None:
    snap = _snapshot(
        completions=[VideoCompletion(user_id=USER, video_id=1, completed_at=NOW - 50)],
        challenge_responses=[_response("Completed", _challenge())],
        attendance=[_attendance(1, "Present")],
        quiz_grades=[QuizGrade(user_id=USER, quiz_number=1, grade=5)],
    )
    stamps = [e.occurred_at for e in build_ledger(snap, now=NOW)]
    assert stamps == sorted(stamps, reverse=True)
    assert build_ledger(snap, now=NOW)[0].category == "Quiz"


# ---- fetch / failure tolerance ----


class _BrokenQuizRepo(InMemoryActivityRepo):
    async def list_quiz_grades(self, user_id):
        raise ConnectionError("quiz table unavailable")


def _seed_scenario(r: Repos, *, persisted: int = 300) -> UserProfile:
    async def seed() -> UserProfile:
        profile = UserProfile(id=USER, name="Sam", email="sam@example.com", points=persisted)
        await r.profiles.add(profile)
        challenge = await r.content.add_challenge(
            Challenge(id=0, class_number=1, challenge_number=1, topic="Loops", points_tried=5)
        )
        for video_id in (1, 2):
            await r.content.add_video(Video(video_id=video_id, class_number=1, title=f"V{video_id}"))
            await r.activity.upsert_video_completion(
                VideoCompletion(user_id=USER, video_id=video_id, completed_at=NOW)
            )
        await r.activity.upsert_quiz_grades([QuizGrade(user_id=USER, quiz_number=1, grade=10)])
        await r.activity.upsert_challenge_response(
            ChallengeResponse(
                user_id=USER, challenge_id=challenge.id, status="Tried", submitted_at=NOW
            )
        )
        await r.activity.upsert_attendance([_attendance(1, "Present")])
        return profile

    return asyncio.run(seed())


def test_failing_source_is_treated_as_empty() -> None:
    r = build_in_memory_repos()
    broken = _BrokenQuizRepo(r.content)
    r = replace(r, activity=broken)
    _seed_scenario(r)

    before = _sample("points_source_failures_total", {"source": "quiz_grades"})
    total = asyncio.run(points_service.compute_points(r.activity, USER))
    after = _sample("points_source_failures_total", {"source": "quiz_grades"})

    assert total == 305  # 315 without the quiz
    assert after - before == 1


def test_fetch_snapshot_joins_current_challenge_values() -> None:
    r = build_in_memory_repos()
    _seed_scenario(r)
    asyncio.run(r.content.update_challenge(1, {"points_tried": 8}))

    snap = asyncio.run(points_service.fetch_snapshot(r.activity, USER))
    assert compute_breakdown(snap).challenge == 8


# ---- reconcile ----


class _CountingProfileRepo(InMemoryProfileRepo):
    def __init__(self) -> None:
        super().__init__()
        self.writes: list[int] = []

    async def set_points_if_version(self, user_id, points, expected_version):
        self.writes.append(points)
        return await super().set_points_if_version(user_id, points, expected_version)


def _repos_with_counting_profiles() -> tuple[Repos, _CountingProfileRepo]:
    profiles = _CountingProfileRepo()
    return replace(build_in_memory_repos(), profiles=profiles), profiles


def test_reconcile_writes_once_on_mismatch() -> None:
    r, profiles = _repos_with_counting_profiles()
    _seed_scenario(r, persisted=300)

    result = asyncio.run(points_service.reconcile_points(r, USER))

    assert result.outcome == ReconcileOutcome.CORRECTED
    assert (result.computed, result.persisted) == (315, 300)
    assert profiles.writes == [315]
    stored = asyncio.run(r.profiles.get(USER))
    assert stored.points == 315
    assert stored.points_version == 1


def test_reconcile_does_not_write_when_totals_match() -> None:
    r, profiles = _repos_with_counting_profiles()
    _seed_scenario(r, persisted=315)

    result = asyncio.run(points_service.reconcile_points(r, USER))

    assert result.outcome == ReconcileOutcome.UNCHANGED
    assert profiles.writes == []


def test_reconcile_reflects_edited_challenge_points() -> None:
    r = build_in_memory_repos()
    _seed_scenario(r, persisted=315)
    asyncio.run(r.content.update_challenge(1, {"points_tried": 7}))

    result = asyncio.run(points_service.reconcile_points(r, USER))
    assert result.outcome == ReconcileOutcome.CORRECTED
    assert result.computed == 317


class _RacingProfileRepo(InMemoryProfileRepo):
    """Simulates another writer landing between our read and our write."""

    async def set_points_if_version(self, user_id, points, expected_version):
        await self.increment_points(user_id, 1)
        return await super().set_points_if_version(user_id, points, expected_version)


def test_reconcile_reports_conflict_when_version_moved() -> None:
    r = replace(build_in_memory_repos(), profiles=_RacingProfileRepo())
    _seed_scenario(r, persisted=300)
    before = _sample("points_reconciliations_total", {"outcome": "conflict"})

    result = asyncio.run(points_service.reconcile_points(r, USER))

    assert result.outcome == ReconcileOutcome.CONFLICT
    assert asyncio.run(r.profiles.get(USER)).points == 301
    assert _sample("points_reconciliations_total", {"outcome": "conflict"}) - before == 1


class _FailingWriteProfileRepo(InMemoryProfileRepo):
    async def set_points_if_version(self, user_id, points, expected_version):
        raise ConnectionError("write timed out")


def test_reconcile_reports_write_failure_without_raising() -> None:
    r = replace(build_in_memory_repos(), profiles=_FailingWriteProfileRepo())
    _seed_scenario(r, persisted=300)

    result = asyncio.run(points_service.reconcile_points(r, USER))

    assert result.outcome == ReconcileOutcome.WRITE_FAILED
    assert asyncio.run(r.profiles.get(USER)).points == 300


def test_reconcile_missing_user() -> None:
    r = build_in_memory_repos()
    result = asyncio.run(points_service.reconcile_points(r, uuid.uuid4()))
    assert result.outcome == ReconcileOutcome.MISSING_USER


# ---- history cache ----


def test_history_is_cached_until_invalidated() -> None:
    r = build_in_memory_repos()
    _seed_scenario(r)

    first = asyncio.run(points_service.points_history(r.activity, USER, now=NOW))
    cached = asyncio.run(cache_service.get(points_service.ledger_cache_key(USER)))
    assert cached is not None
    assert len(json.loads(cached)) == len(first)

    asyncio.run(r.activity.upsert_attendance([_attendance(2, "Leave")]))
    stale = asyncio.run(points_service.points_history(r.activity, USER, now=NOW))
    assert stale == first

    asyncio.run(points_service.invalidate_history(USER))
    fresh = asyncio.run(points_service.points_history(r.activity, USER, now=NOW))
    assert len(fresh) == len(first) + 1
