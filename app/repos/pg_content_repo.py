"""PostgreSQL implementation of ContentRepo."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.tables import ChallengeRow, DashboardConfigRow, VideoRow
from app.models.activity import Challenge, Video
from app.repos.content_repo import DEFAULT_ACTIVE_CLASS

_CONFIG_ROW_ID = 1


class PgContentRepo:
    """Satisfies the ContentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    # --- challenges ---

    async def list_challenges(
        self, class_number: int | None = None, *, active_only: bool = False
    ) -> list[Challenge]:
        stmt = select(ChallengeRow).order_by(
            ChallengeRow.class_number, ChallengeRow.challenge_number
        )
        if class_number is not None:
            stmt = stmt.where(ChallengeRow.class_number == class_number)
        if active_only:
            stmt = stmt.where(ChallengeRow.is_active.is_(True))
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [row_to_challenge(r) for r in rows]

    async def get_challenge(self, challenge_id: int) -> Challenge | None:
        async with self._sessions() as session:
            row = await session.get(ChallengeRow, challenge_id)
            return row_to_challenge(row) if row is not None else None

    async def add_challenge(self, challenge: Challenge) -> Challenge:
        row = ChallengeRow(
            class_number=challenge.class_number,
            challenge_number=challenge.challenge_number,
            topic=challenge.topic,
            description=challenge.description,
            points_completed=challenge.points_completed,
            points_tried=challenge.points_tried,
            points_not_completed=challenge.points_not_completed,
            is_active=challenge.is_active,
        )
        if challenge.id > 0:
            row.id = challenge.id
        async with self._sessions.begin() as session:
            session.add(row)
            await session.flush()
            return row_to_challenge(row)

    async def update_challenge(
        self, challenge_id: int, changes: dict[str, Any]
    ) -> Challenge | None:
        async with self._sessions.begin() as session:
            row = await session.get(ChallengeRow, challenge_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            await session.flush()
            return row_to_challenge(row)

    async def delete_challenge(self, challenge_id: int) -> bool:
        stmt = delete(ChallengeRow).where(ChallengeRow.id == challenge_id)
        async with self._sessions.begin() as session:
            result = await session.execute(stmt)
        return result.rowcount > 0

    # --- videos ---

    async def list_videos(self, class_number: int | None = None) -> list[Video]:
        stmt = select(VideoRow).order_by(VideoRow.video_id)
        if class_number is not None:
            stmt = stmt.where(VideoRow.class_number == class_number)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_video(r) for r in rows]

    async def get_video(self, video_id: int) -> Video | None:
        async with self._sessions() as session:
            row = await session.get(VideoRow, video_id)
            return _row_to_video(row) if row is not None else None

    async def add_video(self, video: Video) -> Video:
        row = VideoRow(class_number=video.class_number, title=video.title, url=video.url)
        if video.video_id > 0:
            row.video_id = video.video_id
        async with self._sessions.begin() as session:
            session.add(row)
            await session.flush()
            return _row_to_video(row)

    async def delete_video(self, video_id: int) -> bool:
        stmt = delete(VideoRow).where(VideoRow.video_id == video_id)
        async with self._sessions.begin() as session:
            result = await session.execute(stmt)
        return result.rowcount > 0

    # --- dashboard config ---

    async def get_active_class(self) -> int:
        async with self._sessions() as session:
            row = await session.get(DashboardConfigRow, _CONFIG_ROW_ID)
        return row.class_id if row is not None else DEFAULT_ACTIVE_CLASS

    async def set_active_class(self, class_number: int) -> None:
        stmt = pg_insert(DashboardConfigRow).values(
            id=_CONFIG_ROW_ID, class_id=class_number
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DashboardConfigRow.id],
            set_={"class_id": stmt.excluded.class_id},
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt)


def row_to_challenge(row: ChallengeRow) -> Challenge:
    return Challenge(
        id=row.id,
        class_number=row.class_number,
        challenge_number=row.challenge_number,
        topic=row.topic,
        description=row.description,
        points_completed=row.points_completed,
        points_tried=row.points_tried,
        points_not_completed=row.points_not_completed or 0,
        is_active=row.is_active,
    )


def _row_to_video(row: VideoRow) -> Video:
    return Video(
        video_id=row.video_id,
        class_number=row.class_number,
        title=row.title,
        url=row.url or "",
    )
