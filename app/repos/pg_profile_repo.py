"""PostgreSQL implementation of ProfileRepo."""

from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.tables import ProfileRow
from app.models.profile import UserProfile


class PgProfileRepo:
    """Satisfies the ProfileRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, user_id: UUID) -> UserProfile | None:
        async with self._sessions() as session:
            row = await session.get(ProfileRow, user_id)
            return _row_to_profile(row) if row is not None else None

    async def add(self, profile: UserProfile) -> None:
        async with self._sessions.begin() as session:
            session.add(
                ProfileRow(
                    id=profile.id,
                    name=profile.name,
                    email=profile.email,
                    role=profile.role,
                    points=profile.points,
                    points_version=profile.points_version,
                )
            )

    async def list_by_roles(self, roles: Collection[str]) -> list[UserProfile]:
        stmt = select(ProfileRow).where(ProfileRow.role.in_(list(roles)))
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_profile(r) for r in rows]

    async def set_points_if_version(
        self, user_id: UUID, points: int, expected_version: int
    ) -> bool:
        # Compare-and-swap: only applies when nobody wrote since our read.
        stmt = (
            update(ProfileRow)
            .where(
                ProfileRow.id == user_id,
                ProfileRow.points_version == expected_version,
            )
            .values(points=points, points_version=ProfileRow.points_version + 1)
        )
        async with self._sessions.begin() as session:
            result = await session.execute(stmt)
        return result.rowcount == 1

    async def increment_points(self, user_id: UUID, delta: int) -> UserProfile | None:
        stmt = (
            update(ProfileRow)
            .where(ProfileRow.id == user_id)
            .values(
                points=ProfileRow.points + delta,
                points_version=ProfileRow.points_version + 1,
            )
            .returning(ProfileRow)
        )
        async with self._sessions.begin() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_profile(row) if row is not None else None


def _row_to_profile(row: ProfileRow) -> UserProfile:
    return UserProfile(
        id=row.id,
        name=row.name or "",
        email=row.email or "",
        role=row.role,
        points=row.points or 0,
        points_version=row.points_version or 0,
    )
