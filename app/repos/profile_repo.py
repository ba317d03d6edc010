from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.profile import UserProfile


class ProfileRepo(Protocol):
    async def get(self, user_id: UUID) -> UserProfile | None: ...
    async def add(self, profile: UserProfile) -> None: ...
    async def list_by_roles(self, roles: Collection[str]) -> list[UserProfile]: ...
    async def set_points_if_version(
        self, user_id: UUID, points: int, expected_version: int
    ) -> bool: ...
    async def increment_points(self, user_id: UUID, delta: int) -> UserProfile | None: ...


class InMemoryProfileRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, UserProfile] = {}

    async def get(self, user_id: UUID) -> UserProfile | None:
        return self._by_id.get(user_id)

    async def add(self, profile: UserProfile) -> None:
        if profile.id in self._by_id:
            raise ValueError("profile already exists")
        self._by_id[profile.id] = profile

    async def list_by_roles(self, roles: Collection[str]) -> list[UserProfile]:
        return [p for p in self._by_id.values() if p.role in roles]

    async def set_points_if_version(
        self, user_id: UUID, points: int, expected_version: int
    ) -> bool:
        p = self._by_id.get(user_id)
        if p is None or p.points_version != expected_version:
            return False
        self._by_id[user_id] = replace(
            p, points=points, points_version=p.points_version + 1
        )
        return True

    async def increment_points(self, user_id: UUID, delta: int) -> UserProfile | None:
        p = self._by_id.get(user_id)
        if p is None:
            return None
        updated = replace(
            p, points=p.points + delta, points_version=p.points_version + 1
        )
        self._by_id[user_id] = updated
        return updated
