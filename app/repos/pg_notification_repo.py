"""PostgreSQL implementation of NotificationRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.tables import NotificationRow
from app.models.notification import Notification
from app.repos.notification_repo import RECENT_LIMIT


class PgNotificationRepo:
    """Satisfies the NotificationRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def add(self, notification: Notification) -> None:
        async with self._sessions.begin() as session:
            session.add(
                NotificationRow(
                    id=notification.id,
                    user_id=notification.user_id,
                    type=notification.type,
                    title=notification.title,
                    message=notification.message,
                    is_read=notification.is_read,
                    created_at=notification.created_at,
                )
            )

    async def list_recent(
        self, user_id: UUID, limit: int = RECENT_LIMIT
    ) -> list[Notification]:
        stmt = (
            select(NotificationRow)
            .where(NotificationRow.user_id == user_id)
            .order_by(NotificationRow.created_at.desc())
            .limit(limit)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [
            Notification(
                id=r.id,
                user_id=r.user_id,
                type=r.type,
                title=r.title,
                message=r.message,
                created_at=r.created_at,
                is_read=r.is_read,
            )
            for r in rows
        ]

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> bool:
        stmt = (
            update(NotificationRow)
            .where(
                NotificationRow.id == notification_id,
                NotificationRow.user_id == user_id,
            )
            .values(is_read=True)
        )
        async with self._sessions.begin() as session:
            result = await session.execute(stmt)
        return result.rowcount > 0
