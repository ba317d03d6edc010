"""Points aggregation: one total and one ledger from the activity sources.

A user's points come from four activity sources (video completions with
watch progress merged in, quiz grades, challenge responses, attendance).
This module turns a snapshot of those sources into:

  - a total (compute_total), always recomputed with the *current* point
    values of each challenge, so editing a challenge re-values past
    responses;
  - a ledger (build_ledger), one LedgerEntry per activity, newest first.

Reading and correcting are separate operations.  compute_points never
writes.  reconcile_points compares the computed total with the persisted
`points` field and, on mismatch, issues one compare-and-swap write keyed
on `points_version`.  A lost race is reported as a conflict, not retried;
the recompute task that follows the competing write will settle it.

Source reads never fail the aggregation: a failing source is logged,
counted, and treated as empty.  The total then under-reports until the
next successful run, which is preferred over an error page.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar
from uuid import UUID

from app.core.metrics import POINTS_RECONCILIATIONS, POINTS_SOURCE_FAILURES
from app.models.activity import (
    AttendanceRecord,
    ChallengeResponse,
    QuizGrade,
    VideoCompletion,
    WatchProgress,
)
from app.models.ledger import LedgerEntry
from app.repos.activity_repo import ActivityRepo
from app.services.cache import cache_service

if TYPE_CHECKING:
    from app.repos.registry import Repos

logger = logging.getLogger(__name__)

T = TypeVar("T")

VIDEO_POINTS = 100
ATTENDANCE_POINTS = 100

# Used when a response's challenge was deleted or has no value set.
FALLBACK_COMPLETED_POINTS = 10
FALLBACK_TRIED_POINTS = 5

# Leave shows up in the history; only Present earns points.
HISTORY_ATTENDANCE_STATUSES = ("Present", "Leave")

LEDGER_CACHE_TTL = 300


def ledger_cache_key(user_id: UUID) -> str:
    return f"ledger:{user_id}"


class ReconcileOutcome(StrEnum):
    UNCHANGED = "unchanged"
    CORRECTED = "corrected"
    CONFLICT = "conflict"
    WRITE_FAILED = "write_failed"
    MISSING_USER = "missing_user"


@dataclass(frozen=True, slots=True)
class ActivitySnapshot:
    """Everything the aggregator reads for one user, fetched together."""

    completions: list[VideoCompletion]
    watch_progress: list[WatchProgress]
    quiz_grades: list[QuizGrade]
    challenge_responses: list[ChallengeResponse]
    attendance: list[AttendanceRecord]


@dataclass(frozen=True, slots=True)
class PointBreakdown:
    video: int
    quiz: int
    challenge: int
    attendance: int

    @property
    def total(self) -> int:
        return self.video + self.quiz + self.challenge + self.attendance


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    computed: int
    persisted: int | None


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


async def _read_source(source: str, user_id: UUID, read: Awaitable[list[T]]) -> list[T]:
    try:
        return await read
    except Exception as exc:
        logger.warning(
            "Points source %s failed for user=%s, treating as empty: %s",
            source,
            user_id,
            exc,
        )
        POINTS_SOURCE_FAILURES.labels(source=source).inc()
        return []


async def fetch_snapshot(activity: ActivityRepo, user_id: UUID) -> ActivitySnapshot:
    """Read all sources for a user concurrently; failed sources come back empty."""
    completions, watch, quizzes, responses, attendance = await asyncio.gather(
        _read_source(
            "video_completions", user_id, activity.list_video_completions(user_id)
        ),
        _read_source("watch_progress", user_id, activity.list_watch_progress(user_id)),
        _read_source("quiz_grades", user_id, activity.list_quiz_grades(user_id)),
        _read_source(
            "challenges", user_id, activity.list_challenge_responses(user_id)
        ),
        _read_source(
            "attendance",
            user_id,
            activity.list_attendance(user_id, HISTORY_ATTENDANCE_STATUSES),
        ),
    )
    return ActivitySnapshot(
        completions=completions,
        watch_progress=watch,
        quiz_grades=quizzes,
        challenge_responses=responses,
        attendance=attendance,
    )


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------


def challenge_points(response: ChallengeResponse) -> int:
    """Points for one response under the challenge's current values."""
    if response.status == "Not Completed":
        return 0

    challenge = response.challenge
    if response.status == "Completed":
        value = challenge.points_completed if challenge else None
        fallback = FALLBACK_COMPLETED_POINTS
    elif response.status == "Tried":
        value = challenge.points_tried if challenge else None
        fallback = FALLBACK_TRIED_POINTS
    else:
        logger.warning(
            "Unknown challenge status %r on challenge=%s",
            response.status,
            response.challenge_id,
        )
        return 0

    if value is None:
        logger.debug(
            "No point value for challenge=%s status=%s, using fallback %d",
            response.challenge_id,
            response.status,
            fallback,
        )
        return fallback
    return value


def compute_breakdown(snapshot: ActivitySnapshot) -> PointBreakdown:
    completed_videos = {c.video_id for c in snapshot.completions if c.is_completed}
    present_classes = {
        a.class_number for a in snapshot.attendance if a.status == "Present"
    }
    return PointBreakdown(
        video=VIDEO_POINTS * len(completed_videos),
        quiz=sum(q.grade for q in snapshot.quiz_grades),
        challenge=sum(challenge_points(r) for r in snapshot.challenge_responses),
        attendance=ATTENDANCE_POINTS * len(present_classes),
    )


def compute_total(snapshot: ActivitySnapshot) -> int:
    return compute_breakdown(snapshot).total


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
# One mapping function per source; build_ledger merges and sorts.


def _video_title(video_id: int, title: str | None) -> str:
    return title or f"Video {video_id}"


def _completion_entry(c: VideoCompletion, now: int) -> LedgerEntry:
    return LedgerEntry(
        id=f"video-{c.video_id}",
        category="Video",
        title=_video_title(c.video_id, c.title),
        points=VIDEO_POINTS,
        occurred_at=c.completed_at if c.completed_at is not None else now,
    )


def _quiz_entry(q: QuizGrade, now: int) -> LedgerEntry:
    # No award timestamp is stored for manual grades.
    return LedgerEntry(
        id=f"quiz-{q.quiz_number}",
        category="Quiz",
        title=f"Quiz {q.quiz_number}: {q.feedback or 'Assessment'}",
        points=q.grade,
        occurred_at=now,
    )


def _challenge_entry(r: ChallengeResponse) -> LedgerEntry:
    return LedgerEntry(
        id=f"challenge-{r.challenge_id}",
        category="Challenge",
        title=r.challenge.topic if r.challenge else "Challenge",
        points=challenge_points(r),
        occurred_at=r.submitted_at,
        status=r.status,
    )


def _attendance_entry(a: AttendanceRecord) -> LedgerEntry:
    return LedgerEntry(
        id=f"attendance-{a.class_number}",
        category="Attendance",
        title=a.session_topic or f"Class {a.class_number}",
        points=ATTENDANCE_POINTS if a.status == "Present" else 0,
        occurred_at=a.date_of_class,
        status=a.status,
    )


def _merge_videos(snapshot: ActivitySnapshot, now: int) -> list[LedgerEntry]:
    """Collapse completion and watch-progress rows into one entry per video.

    A completion row is worth VIDEO_POINTS.  A watch-progress row for the
    same video only moves the timestamp; on its own it carries the award
    stored with it.
    """
    by_video: dict[int, LedgerEntry] = {}
    for c in snapshot.completions:
        if c.is_completed:
            by_video[c.video_id] = _completion_entry(c, now)

    for w in snapshot.watch_progress:
        existing = by_video.get(w.video_id)
        if existing is not None:
            by_video[w.video_id] = LedgerEntry(
                id=existing.id,
                category="Video",
                title=_video_title(w.video_id, w.title or existing.title),
                points=existing.points,
                occurred_at=w.last_updated,
            )
        else:
            by_video[w.video_id] = LedgerEntry(
                id=f"video-{w.video_id}",
                category="Video",
                title=_video_title(w.video_id, w.title),
                points=w.points_awarded,
                occurred_at=w.last_updated,
            )
    return list(by_video.values())


def build_ledger(snapshot: ActivitySnapshot, *, now: int) -> list[LedgerEntry]:
    entries = _merge_videos(snapshot, now)
    entries += [_quiz_entry(q, now) for q in snapshot.quiz_grades if q.grade > 0]
    entries += [
        _challenge_entry(r)
        for r in snapshot.challenge_responses
        if r.status != "Not Completed"
    ]
    entries += [
        _attendance_entry(a)
        for a in snapshot.attendance
        if a.status in HISTORY_ATTENDANCE_STATUSES
    ]
    entries.sort(key=lambda e: e.occurred_at, reverse=True)
    return entries


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def compute_points(activity: ActivityRepo, user_id: UUID) -> int:
    """Current total for a user.  Read-only."""
    return compute_total(await fetch_snapshot(activity, user_id))


async def reconcile_points(repos: Repos, user_id: UUID) -> ReconcileResult:
    """Correct the persisted total if it drifted from the computed one.

    At most one write is issued, conditional on the version read here.
    """
    profile = await repos.profiles.get(user_id)
    if profile is None:
        POINTS_RECONCILIATIONS.labels(outcome=ReconcileOutcome.MISSING_USER).inc()
        logger.info("Reconcile skipped, no profile for user=%s", user_id)
        return ReconcileResult(ReconcileOutcome.MISSING_USER, 0, None)

    computed = await compute_points(repos.activity, user_id)
    if computed == profile.points:
        outcome = ReconcileOutcome.UNCHANGED
    else:
        try:
            applied = await repos.profiles.set_points_if_version(
                user_id, computed, profile.points_version
            )
        except Exception:
            logger.exception(
                "Points correction write failed for user=%s (%d -> %d)",
                user_id,
                profile.points,
                computed,
            )
            outcome = ReconcileOutcome.WRITE_FAILED
        else:
            if applied:
                logger.info(
                    "Points corrected for user=%s: %d -> %d",
                    user_id,
                    profile.points,
                    computed,
                )
                outcome = ReconcileOutcome.CORRECTED
            else:
                logger.warning(
                    "Points correction lost a race for user=%s (version %d moved)",
                    user_id,
                    profile.points_version,
                )
                outcome = ReconcileOutcome.CONFLICT

    POINTS_RECONCILIATIONS.labels(outcome=outcome).inc()
    return ReconcileResult(outcome, computed, profile.points)


async def points_history(
    activity: ActivityRepo, user_id: UUID, *, now: int | None = None
) -> list[LedgerEntry]:
    """The user's ledger, served through the read-through cache."""
    key = ledger_cache_key(user_id)
    cached = await cache_service.get(key)
    if cached is not None:
        return [LedgerEntry(**row) for row in json.loads(cached)]

    snapshot = await fetch_snapshot(activity, user_id)
    ledger = build_ledger(snapshot, now=now if now is not None else int(time.time()))
    await cache_service.set(
        key, json.dumps([asdict(e) for e in ledger]), LEDGER_CACHE_TTL
    )
    return ledger


async def invalidate_history(user_id: UUID) -> None:
    await cache_service.delete(ledger_cache_key(user_id))
