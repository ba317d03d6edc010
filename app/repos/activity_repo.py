"""Per-user activity records: the point sources the aggregator reads.

Reads are scoped to one user and return domain dataclasses with the parent
rows the aggregator needs already joined (video titles, challenge point
values).  Writes are upserts keyed by the natural key of each table.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.activity import (
    AttendanceRecord,
    ChallengeResponse,
    QuizGrade,
    VideoCompletion,
    WatchProgress,
)
from app.repos.content_repo import InMemoryContentRepo


class ActivityRepo(Protocol):
    # --- aggregator reads ---
    async def list_video_completions(self, user_id: UUID) -> list[VideoCompletion]: ...
    async def list_watch_progress(self, user_id: UUID) -> list[WatchProgress]: ...
    async def list_quiz_grades(self, user_id: UUID) -> list[QuizGrade]: ...
    async def list_challenge_responses(
        self, user_id: UUID
    ) -> list[ChallengeResponse]: ...
    async def list_attendance(
        self, user_id: UUID, statuses: Collection[str] | None = None
    ) -> list[AttendanceRecord]: ...

    # --- writes ---
    async def get_watch_progress(
        self, user_id: UUID, video_id: int
    ) -> WatchProgress | None: ...
    async def upsert_watch_progress(self, progress: WatchProgress) -> None: ...
    async def get_video_completion(
        self, user_id: UUID, video_id: int
    ) -> VideoCompletion | None: ...
    async def upsert_video_completion(self, completion: VideoCompletion) -> None: ...
    async def upsert_quiz_grades(self, grades: list[QuizGrade]) -> None: ...
    async def delete_quiz(self, quiz_number: int) -> list[UUID]: ...
    async def upsert_challenge_response(self, response: ChallengeResponse) -> None: ...
    async def list_challenge_responders(self, challenge_id: int) -> list[UUID]: ...
    async def upsert_attendance(self, records: list[AttendanceRecord]) -> None: ...
    async def delete_attendance_class(self, class_number: int) -> list[UUID]: ...

    # --- admin aggregates ---
    async def count_distinct_quizzes(self) -> int: ...
    async def count_distinct_attendance_classes(self) -> int: ...


class InMemoryActivityRepo:
    def __init__(self, content: InMemoryContentRepo) -> None:
        self._content = content
        self._completions: dict[tuple[UUID, int], VideoCompletion] = {}
        self._watch: dict[tuple[UUID, int], WatchProgress] = {}
        self._quizzes: dict[tuple[UUID, int], QuizGrade] = {}
        self._responses: dict[tuple[UUID, int], ChallengeResponse] = {}
        self._attendance: dict[tuple[UUID, int], AttendanceRecord] = {}

    def clear(self) -> None:
        for store in (
            self._completions,
            self._watch,
            self._quizzes,
            self._responses,
            self._attendance,
        ):
            store.clear()

    async def _video_title(self, video_id: int) -> str | None:
        video = await self._content.get_video(video_id)
        return video.title if video else None

    async def list_video_completions(self, user_id: UUID) -> list[VideoCompletion]:
        rows = [
            c
            for (uid, _), c in self._completions.items()
            if uid == user_id and c.is_completed
        ]
        return [replace(c, title=await self._video_title(c.video_id)) for c in rows]

    async def list_watch_progress(self, user_id: UUID) -> list[WatchProgress]:
        rows = [
            w
            for (uid, _), w in self._watch.items()
            if uid == user_id and w.points_awarded > 0
        ]
        return [replace(w, title=await self._video_title(w.video_id)) for w in rows]

    async def list_quiz_grades(self, user_id: UUID) -> list[QuizGrade]:
        return [q for (uid, _), q in self._quizzes.items() if uid == user_id]

    async def list_challenge_responses(
        self, user_id: UUID
    ) -> list[ChallengeResponse]:
        return [
            replace(r, challenge=await self._content.get_challenge(r.challenge_id))
            for (uid, _), r in self._responses.items()
            if uid == user_id
        ]

    async def list_attendance(
        self, user_id: UUID, statuses: Collection[str] | None = None
    ) -> list[AttendanceRecord]:
        return [
            a
            for (uid, _), a in self._attendance.items()
            if uid == user_id and (statuses is None or a.status in statuses)
        ]

    async def get_watch_progress(
        self, user_id: UUID, video_id: int
    ) -> WatchProgress | None:
        return self._watch.get((user_id, video_id))

    async def upsert_watch_progress(self, progress: WatchProgress) -> None:
        self._watch[(progress.user_id, progress.video_id)] = replace(
            progress, title=None
        )

    async def get_video_completion(
        self, user_id: UUID, video_id: int
    ) -> VideoCompletion | None:
        return self._completions.get((user_id, video_id))

    async def upsert_video_completion(self, completion: VideoCompletion) -> None:
        self._completions[(completion.user_id, completion.video_id)] = replace(
            completion, title=None
        )

    async def upsert_quiz_grades(self, grades: list[QuizGrade]) -> None:
        for g in grades:
            self._quizzes[(g.user_id, g.quiz_number)] = g

    async def delete_quiz(self, quiz_number: int) -> list[UUID]:
        keys = [k for k in self._quizzes if k[1] == quiz_number]
        for k in keys:
            del self._quizzes[k]
        return [uid for uid, _ in keys]

    async def upsert_challenge_response(self, response: ChallengeResponse) -> None:
        self._responses[(response.user_id, response.challenge_id)] = replace(
            response, challenge=None
        )

    async def list_challenge_responders(self, challenge_id: int) -> list[UUID]:
        return [uid for uid, cid in self._responses if cid == challenge_id]

    async def upsert_attendance(self, records: list[AttendanceRecord]) -> None:
        for a in records:
            self._attendance[(a.user_id, a.class_number)] = a

    async def delete_attendance_class(self, class_number: int) -> list[UUID]:
        keys = [k for k in self._attendance if k[1] == class_number]
        for k in keys:
            del self._attendance[k]
        return [uid for uid, _ in keys]

    async def count_distinct_quizzes(self) -> int:
        return len({quiz for _, quiz in self._quizzes})

    async def count_distinct_attendance_classes(self) -> int:
        return len({cls for _, cls in self._attendance})
