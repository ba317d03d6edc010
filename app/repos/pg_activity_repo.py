"""PostgreSQL implementation of ActivityRepo.

Each method opens its own session so the aggregator's five reads can run
concurrently.  Upserts use INSERT .. ON CONFLICT on the natural key.
"""

from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.tables import (
    AttendanceRow,
    ChallengeResponseRow,
    ChallengeRow,
    QuizGradeRow,
    VideoCompletionRow,
    VideoRow,
    WatchProgressRow,
)
from app.models.activity import (
    AttendanceRecord,
    ChallengeResponse,
    QuizGrade,
    VideoCompletion,
    WatchProgress,
)
from app.repos.pg_content_repo import row_to_challenge


class PgActivityRepo:
    """Satisfies the ActivityRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    # --- aggregator reads ---

    async def list_video_completions(self, user_id: UUID) -> list[VideoCompletion]:
        stmt = (
            select(VideoCompletionRow, VideoRow.title)
            .outerjoin(VideoRow, VideoRow.video_id == VideoCompletionRow.video_id)
            .where(
                VideoCompletionRow.user_id == user_id,
                VideoCompletionRow.is_completed.is_(True),
            )
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
        return [
            VideoCompletion(
                user_id=r.user_id,
                video_id=r.video_id,
                is_completed=r.is_completed,
                completed_at=r.completed_at,
                title=title,
            )
            for r, title in rows
        ]

    async def list_watch_progress(self, user_id: UUID) -> list[WatchProgress]:
        stmt = (
            select(WatchProgressRow, VideoRow.title)
            .outerjoin(VideoRow, VideoRow.video_id == WatchProgressRow.video_id)
            .where(
                WatchProgressRow.user_id == user_id,
                WatchProgressRow.points_awarded > 0,
            )
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
        return [_row_to_watch(r, title) for r, title in rows]

    async def list_quiz_grades(self, user_id: UUID) -> list[QuizGrade]:
        stmt = select(QuizGradeRow).where(QuizGradeRow.user_id == user_id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [
            QuizGrade(
                user_id=r.user_id,
                quiz_number=r.quiz_number,
                grade=r.grade,
                class_number=r.class_number,
                total_points=r.total_points,
                feedback=r.feedback,
            )
            for r in rows
        ]

    async def list_challenge_responses(
        self, user_id: UUID
    ) -> list[ChallengeResponse]:
        stmt = (
            select(ChallengeResponseRow, ChallengeRow)
            .outerjoin(ChallengeRow, ChallengeRow.id == ChallengeResponseRow.challenge_id)
            .where(ChallengeResponseRow.user_id == user_id)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ChallengeResponse(
                user_id=r.user_id,
                challenge_id=r.challenge_id,
                status=r.status,
                submitted_at=r.submitted_at,
                challenge=row_to_challenge(c) if c is not None else None,
            )
            for r, c in rows
        ]

    async def list_attendance(
        self, user_id: UUID, statuses: Collection[str] | None = None
    ) -> list[AttendanceRecord]:
        stmt = select(AttendanceRow).where(AttendanceRow.user_id == user_id)
        if statuses is not None:
            stmt = stmt.where(AttendanceRow.status.in_(list(statuses)))
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [
            AttendanceRecord(
                user_id=r.user_id,
                class_number=r.class_number,
                status=r.status,
                session_topic=r.session_topic,
                date_of_class=r.date_of_class,
            )
            for r in rows
        ]

    # --- writes ---

    async def get_watch_progress(
        self, user_id: UUID, video_id: int
    ) -> WatchProgress | None:
        async with self._sessions() as session:
            row = await session.get(WatchProgressRow, (user_id, video_id))
            return _row_to_watch(row, None) if row is not None else None

    async def upsert_watch_progress(self, progress: WatchProgress) -> None:
        stmt = pg_insert(WatchProgressRow).values(
            user_id=progress.user_id,
            video_id=progress.video_id,
            watch_percentage=progress.watch_percentage,
            points_awarded=progress.points_awarded,
            last_updated=progress.last_updated,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[WatchProgressRow.user_id, WatchProgressRow.video_id],
            set_={
                "watch_percentage": stmt.excluded.watch_percentage,
                # never lower an award that is already stored
                "points_awarded": func.greatest(
                    WatchProgressRow.points_awarded, stmt.excluded.points_awarded
                ),
                "last_updated": stmt.excluded.last_updated,
            },
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt)

    async def get_video_completion(
        self, user_id: UUID, video_id: int
    ) -> VideoCompletion | None:
        async with self._sessions() as session:
            row = await session.get(VideoCompletionRow, (user_id, video_id))
            if row is None:
                return None
            return VideoCompletion(
                user_id=row.user_id,
                video_id=row.video_id,
                is_completed=row.is_completed,
                completed_at=row.completed_at,
            )

    async def upsert_video_completion(self, completion: VideoCompletion) -> None:
        stmt = pg_insert(VideoCompletionRow).values(
            user_id=completion.user_id,
            video_id=completion.video_id,
            is_completed=completion.is_completed,
            progress_percentage=100 if completion.is_completed else 0,
            completed_at=completion.completed_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[VideoCompletionRow.user_id, VideoCompletionRow.video_id],
            set_={
                "is_completed": stmt.excluded.is_completed,
                "progress_percentage": stmt.excluded.progress_percentage,
                "completed_at": stmt.excluded.completed_at,
            },
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt)

    async def upsert_quiz_grades(self, grades: list[QuizGrade]) -> None:
        if not grades:
            return
        stmt = pg_insert(QuizGradeRow).values(
            [
                {
                    "user_id": g.user_id,
                    "quiz_number": g.quiz_number,
                    "class_number": g.class_number,
                    "grade": g.grade,
                    "total_points": g.total_points,
                    "feedback": g.feedback,
                }
                for g in grades
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[QuizGradeRow.user_id, QuizGradeRow.quiz_number],
            set_={
                "class_number": stmt.excluded.class_number,
                "grade": stmt.excluded.grade,
                "total_points": stmt.excluded.total_points,
                "feedback": stmt.excluded.feedback,
            },
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt)

    async def delete_quiz(self, quiz_number: int) -> list[UUID]:
        stmt = (
            delete(QuizGradeRow)
            .where(QuizGradeRow.quiz_number == quiz_number)
            .returning(QuizGradeRow.user_id)
        )
        async with self._sessions.begin() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def upsert_challenge_response(self, response: ChallengeResponse) -> None:
        stmt = pg_insert(ChallengeResponseRow).values(
            user_id=response.user_id,
            challenge_id=response.challenge_id,
            status=response.status,
            submitted_at=response.submitted_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                ChallengeResponseRow.user_id,
                ChallengeResponseRow.challenge_id,
            ],
            set_={
                "status": stmt.excluded.status,
                "submitted_at": stmt.excluded.submitted_at,
            },
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt)

    async def list_challenge_responders(self, challenge_id: int) -> list[UUID]:
        stmt = select(ChallengeResponseRow.user_id).where(
            ChallengeResponseRow.challenge_id == challenge_id
        )
        async with self._sessions() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def upsert_attendance(self, records: list[AttendanceRecord]) -> None:
        if not records:
            return
        stmt = pg_insert(AttendanceRow).values(
            [
                {
                    "user_id": a.user_id,
                    "class_number": a.class_number,
                    "status": a.status,
                    "session_topic": a.session_topic,
                    "date_of_class": a.date_of_class,
                }
                for a in records
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AttendanceRow.user_id, AttendanceRow.class_number],
            set_={
                "status": stmt.excluded.status,
                "session_topic": stmt.excluded.session_topic,
                "date_of_class": stmt.excluded.date_of_class,
            },
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt)

    async def delete_attendance_class(self, class_number: int) -> list[UUID]:
        stmt = (
            delete(AttendanceRow)
            .where(AttendanceRow.class_number == class_number)
            .returning(AttendanceRow.user_id)
        )
        async with self._sessions.begin() as session:
            return list((await session.execute(stmt)).scalars().all())

    # --- admin aggregates ---

    async def count_distinct_quizzes(self) -> int:
        stmt = select(func.count(func.distinct(QuizGradeRow.quiz_number)))
        async with self._sessions() as session:
            return (await session.execute(stmt)).scalar_one()

    async def count_distinct_attendance_classes(self) -> int:
        stmt = select(func.count(func.distinct(AttendanceRow.class_number)))
        async with self._sessions() as session:
            return (await session.execute(stmt)).scalar_one()


def _row_to_watch(row: WatchProgressRow, title: str | None) -> WatchProgress:
    return WatchProgress(
        user_id=row.user_id,
        video_id=row.video_id,
        watch_percentage=row.watch_percentage,
        points_awarded=row.points_awarded,
        last_updated=row.last_updated,
        title=title,
    )
