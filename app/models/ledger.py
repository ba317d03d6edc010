from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

LedgerCategory = Literal["Video", "Quiz", "Challenge", "Attendance"]


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """One row of a user's points history.

    Every activity source projects onto this shape.  `id` is the source
    type plus the record's natural key, e.g. "video-7" or "attendance-3".
    """

    id: str
    category: LedgerCategory
    title: str
    points: int
    occurred_at: int
    status: str | None = None
