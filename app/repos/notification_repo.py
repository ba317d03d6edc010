from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.notification import Notification

RECENT_LIMIT = 20


class NotificationRepo(Protocol):
    async def add(self, notification: Notification) -> None: ...
    async def list_recent(
        self, user_id: UUID, limit: int = RECENT_LIMIT
    ) -> list[Notification]: ...
    async def mark_read(self, notification_id: UUID, user_id: UUID) -> bool: ...


class InMemoryNotificationRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Notification] = {}

    async def add(self, notification: Notification) -> None:
        self._by_id[notification.id] = notification

    async def list_recent(
        self, user_id: UUID, limit: int = RECENT_LIMIT
    ) -> list[Notification]:
        mine = [n for n in self._by_id.values() if n.user_id == user_id]
        mine.sort(key=lambda n: n.created_at, reverse=True)
        return mine[:limit]

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> bool:
        n = self._by_id.get(notification_id)
        # Scoped to the owner so one user cannot flip another's flags
        if n is None or n.user_id != user_id:
            return False
        self._by_id[notification_id] = replace(n, is_read=True)
        return True
