"""Student ranking by persisted points.

Ranks are computed by loading every student and sorting in process, so
each lookup is O(n log n) in the number of students.  Fine for a cohort
of a few thousand; beyond that this wants a window-function query in the
profile repo.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from app.models.profile import UserProfile
from app.repos.profile_repo import ProfileRepo

DEFAULT_LEADERBOARD_LIMIT = 10


@dataclass(frozen=True, slots=True)
class StudentRank:
    rank: int | None  # 1-based; None when the user is not a student
    total_students: int
    points: int


def _ordering(p: UserProfile) -> tuple[int, str, str]:
    # points desc, then name, then id so equal totals have a stable order
    return (-p.points, p.name.lower(), str(p.id))


async def ranked_students(profiles: ProfileRepo) -> list[UserProfile]:
    students = await profiles.list_by_roles(("Student",))
    return sorted(students, key=_ordering)


async def top_students(
    profiles: ProfileRepo, limit: int = DEFAULT_LEADERBOARD_LIMIT
) -> list[UserProfile]:
    return (await ranked_students(profiles))[:limit]


async def rank_of(profiles: ProfileRepo, user_id: UUID) -> StudentRank:
    ranked = await ranked_students(profiles)
    for index, p in enumerate(ranked, start=1):
        if p.id == user_id:
            return StudentRank(rank=index, total_students=len(ranked), points=p.points)

    profile = await profiles.get(user_id)
    return StudentRank(
        rank=None,
        total_students=len(ranked),
        points=profile.points if profile else 0,
    )
