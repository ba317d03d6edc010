"""Activity writes: the events that change a user's points.

Each write here is a trigger for the points materialized view.  After
the row is stored, the user's cached ledger is dropped and a
points_recompute task is queued; the worker then reconciles the persisted
total.  Bulk staff operations (grading a quiz, marking attendance,
editing a challenge) do the same for every affected user.

Watch progress is the one place points are also credited directly: the
positive award delta is added to the profile right away so the student
sees it without waiting for the worker.  The recompute that follows
settles any drift.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

from app.models.activity import (
    ATTENDANCE_STATUSES,
    CHALLENGE_STATUSES,
    AttendanceRecord,
    Challenge,
    ChallengeResponse,
    QuizGrade,
    VideoCompletion,
    WatchProgress,
)
from app.services import notification_service, points_service
from app.services.cache import cache_service
from app.services.task_queue import POINTS_RECOMPUTE_QUEUE, task_queue

if TYPE_CHECKING:
    from app.repos.registry import Repos

logger = logging.getLogger(__name__)

# (minimum watch percentage, award); checked highest first
WATCH_AWARD_TIERS = ((100.0, 100), (50.0, 50))

CHALLENGE_EDITABLE_FIELDS = frozenset(
    {
        "class_number",
        "challenge_number",
        "topic",
        "description",
        "points_completed",
        "points_tried",
        "points_not_completed",
        "is_active",
    }
)


class ActivityValidationError(ValueError):
    pass


class NotFoundError(LookupError):
    pass


@dataclass(frozen=True, slots=True)
class WatchResult:
    progress: WatchProgress
    points_delta: int


def _now() -> int:
    return int(time.time())


def award_for(percentage: float) -> int:
    for threshold, award in WATCH_AWARD_TIERS:
        if percentage >= threshold:
            return award
    return 0


async def _require_profile(repos: Repos, user_id: UUID) -> None:
    if await repos.profiles.get(user_id) is None:
        raise NotFoundError("profile not found")


async def _require_profiles(repos: Repos, user_ids: Iterable[UUID]) -> None:
    """Bulk staff writes reject the whole batch if any user is unknown."""
    missing = [
        str(uid) for uid in user_ids if await repos.profiles.get(uid) is None
    ]
    if missing:
        raise NotFoundError(f"profile not found for {', '.join(sorted(missing))}")


async def schedule_recompute(user_ids: Iterable[UUID]) -> int:
    """Drop cached ledgers and queue one recompute per distinct user."""
    count = 0
    for user_id in dict.fromkeys(user_ids):
        await points_service.invalidate_history(user_id)
        await task_queue.enqueue(POINTS_RECOMPUTE_QUEUE, {"user_id": str(user_id)})
        count += 1
    return count


# ---------------------------------------------------------------------------
# Student writes
# ---------------------------------------------------------------------------


async def record_watch_progress(
    repos: Repos, user_id: UUID, video_id: int, percentage: float
) -> WatchResult:
    if percentage < 0:
        raise ActivityValidationError("watch percentage must be >= 0")
    await _require_profile(repos, user_id)
    if await repos.content.get_video(video_id) is None:
        raise NotFoundError(f"video {video_id} not found")

    percentage = min(percentage, 100.0)
    existing = await repos.activity.get_watch_progress(user_id, video_id)
    previous_award = existing.points_awarded if existing else 0
    award = max(previous_award, award_for(percentage))

    progress = WatchProgress(
        user_id=user_id,
        video_id=video_id,
        watch_percentage=max(percentage, existing.watch_percentage if existing else 0.0),
        points_awarded=award,
        last_updated=_now(),
    )
    await repos.activity.upsert_watch_progress(progress)

    delta = award - previous_award
    if delta > 0:
        await repos.profiles.increment_points(user_id, delta)
        await notification_service.notify(
            repos.notifications,
            user_id=user_id,
            type="points",
            title="Points earned",
            message=f"You earned {delta} points for watching video {video_id}.",
        )
        logger.info(
            "Watch award user=%s video=%s %d -> %d", user_id, video_id, previous_award, award
        )

    await schedule_recompute([user_id])
    return WatchResult(progress=progress, points_delta=delta)


async def complete_video(repos: Repos, user_id: UUID, video_id: int) -> bool:
    """Mark a video complete.  Returns True on the first completion only."""
    await _require_profile(repos, user_id)
    video = await repos.content.get_video(video_id)
    if video is None:
        raise NotFoundError(f"video {video_id} not found")

    existing = await repos.activity.get_video_completion(user_id, video_id)
    if existing is not None and existing.is_completed:
        return False

    await repos.activity.upsert_video_completion(
        VideoCompletion(user_id=user_id, video_id=video_id, completed_at=_now())
    )
    await notification_service.notify(
        repos.notifications,
        user_id=user_id,
        type="video",
        title="Video completed",
        message=f"You completed {video.title}.",
    )
    await schedule_recompute([user_id])
    return True


async def submit_challenge_response(
    repos: Repos, user_id: UUID, challenge_id: int, status: str
) -> ChallengeResponse:
    if status not in CHALLENGE_STATUSES:
        raise ActivityValidationError(
            f"status must be one of {', '.join(CHALLENGE_STATUSES)}"
        )
    await _require_profile(repos, user_id)
    challenge = await repos.content.get_challenge(challenge_id)
    if challenge is None:
        raise NotFoundError(f"challenge {challenge_id} not found")
    if not challenge.is_active:
        raise ActivityValidationError("challenge is not active")

    response = ChallengeResponse(
        user_id=user_id,
        challenge_id=challenge_id,
        status=status,
        submitted_at=_now(),
    )
    await repos.activity.upsert_challenge_response(response)
    await schedule_recompute([user_id])
    return response


# ---------------------------------------------------------------------------
# Staff writes
# ---------------------------------------------------------------------------


async def grade_quiz(
    repos: Repos,
    *,
    class_number: int,
    quiz_number: int,
    grades: dict[UUID, int],
    total_points: int = 10,
    feedback: dict[UUID, str] | None = None,
) -> int:
    if quiz_number <= 0:
        raise ActivityValidationError("quiz_number must be positive")
    if total_points <= 0:
        raise ActivityValidationError("total_points must be positive")
    for user_id, grade in grades.items():
        if not 0 <= grade <= total_points:
            raise ActivityValidationError(
                f"grade {grade} for {user_id} is outside 0..{total_points}"
            )
    await _require_profiles(repos, grades)

    feedback = feedback or {}
    await repos.activity.upsert_quiz_grades(
        [
            QuizGrade(
                user_id=user_id,
                quiz_number=quiz_number,
                grade=grade,
                class_number=class_number,
                total_points=total_points,
                feedback=feedback.get(user_id),
            )
            for user_id, grade in grades.items()
        ]
    )
    for user_id, grade in grades.items():
        await notification_service.notify(
            repos.notifications,
            user_id=user_id,
            type="quiz",
            title=f"Quiz {quiz_number} graded",
            message=f"You scored {grade}/{total_points} on quiz {quiz_number}.",
        )
    logger.info(
        "Graded quiz=%d class=%d for %d students", quiz_number, class_number, len(grades)
    )
    return await schedule_recompute(grades)


async def delete_quiz(repos: Repos, quiz_number: int) -> int:
    affected = await repos.activity.delete_quiz(quiz_number)
    logger.info("Deleted quiz=%d (%d grades)", quiz_number, len(affected))
    return await schedule_recompute(affected)


async def mark_attendance(
    repos: Repos,
    *,
    class_number: int,
    statuses: dict[UUID, str],
    session_topic: str | None = None,
    date_of_class: int | None = None,
) -> int:
    bad = {s for s in statuses.values() if s not in ATTENDANCE_STATUSES}
    if bad:
        raise ActivityValidationError(f"unknown attendance status {sorted(bad)}")
    await _require_profiles(repos, statuses)

    when = date_of_class if date_of_class is not None else _now()
    await repos.activity.upsert_attendance(
        [
            AttendanceRecord(
                user_id=user_id,
                class_number=class_number,
                status=status,
                session_topic=session_topic,
                date_of_class=when,
            )
            for user_id, status in statuses.items()
        ]
    )
    logger.info("Marked attendance class=%d for %d students", class_number, len(statuses))
    return await schedule_recompute(statuses)


async def delete_attendance(repos: Repos, class_number: int) -> int:
    affected = await repos.activity.delete_attendance_class(class_number)
    logger.info("Deleted attendance class=%d (%d records)", class_number, len(affected))
    return await schedule_recompute(affected)


async def update_challenge(
    repos: Repos, challenge_id: int, changes: dict[str, Any]
) -> Challenge:
    """Edit a challenge; past responses are re-valued at the new points."""
    unknown = set(changes) - CHALLENGE_EDITABLE_FIELDS
    if unknown:
        raise ActivityValidationError(f"cannot update {sorted(unknown)}")
    for field in ("points_completed", "points_tried", "points_not_completed"):
        value = changes.get(field)
        if value is not None and value < 0:
            raise ActivityValidationError(f"{field} must be >= 0")

    updated = await repos.content.update_challenge(challenge_id, changes)
    if updated is None:
        raise NotFoundError(f"challenge {challenge_id} not found")

    responders = await repos.activity.list_challenge_responders(challenge_id)
    # Titles and values are baked into every cached ledger.
    await cache_service.delete_pattern("ledger:*")
    await schedule_recompute(responders)
    logger.info(
        "Updated challenge=%d fields=%s, %d responders queued",
        challenge_id,
        sorted(changes),
        len(responders),
    )
    return updated


async def delete_challenge(repos: Repos, challenge_id: int) -> int:
    responders = await repos.activity.list_challenge_responders(challenge_id)
    if not await repos.content.delete_challenge(challenge_id):
        raise NotFoundError(f"challenge {challenge_id} not found")
    # Responses are kept and fall back to default values.
    return await schedule_recompute(responders)
