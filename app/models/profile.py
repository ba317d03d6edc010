from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

ROLES = ("Student", "Instructor", "Admin", "Staff")


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Profile row provisioned at signup.

    `points` is a materialized total recomputed from the activity tables.
    `points_version` increases on every write to `points` so a correction
    can be applied as compare-and-swap.
    """

    id: UUID
    name: str
    email: str
    role: str = "Student"
    points: int = 0
    points_version: int = 0

    @staticmethod
    def new(
        *,
        id: UUID,
        name: str = "",
        email: str = "",
        role: str = "Student",
    ) -> UserProfile:
        if role not in ROLES:
            raise ValueError(f"unknown role {role!r}")
        return UserProfile(id=id, name=name, email=email, role=role)

    @property
    def is_student(self) -> bool:
        return self.role == "Student"
