from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

NOTIFICATION_TYPES = ("video", "quiz", "points", "rank")


@dataclass(frozen=True, slots=True)
class Notification:
    id: UUID
    user_id: UUID
    type: str  # video|quiz|points|rank
    title: str
    message: str
    created_at: int
    is_read: bool = False

    @staticmethod
    def new(
        *, user_id: UUID, type: str, title: str, message: str, created_at: int
    ) -> Notification:
        if type not in NOTIFICATION_TYPES:
            raise ValueError(f"unknown notification type {type!r}")
        return Notification(
            id=uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            created_at=created_at,
        )
