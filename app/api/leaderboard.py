from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.dependencies import require_user
from app.models.principal import Principal
from app.repos.registry import repos
from app.services import leaderboard_service

router = APIRouter(prefix="/v1/leaderboard", tags=["leaderboard"])

_DEFAULT_LIMIT = leaderboard_service.DEFAULT_LEADERBOARD_LIMIT


class LeaderboardRowOut(BaseModel):
    rank: int
    id: str
    name: str
    points: int


@router.get("", response_model=list[LeaderboardRowOut])
async def get_leaderboard(
    _principal: Annotated[Principal, Depends(require_user)],
    limit: Annotated[int, Query(ge=1, le=100)] = _DEFAULT_LIMIT,
) -> list[LeaderboardRowOut]:
    top = await leaderboard_service.top_students(repos.profiles, limit)
    return [
        LeaderboardRowOut(rank=i, id=str(p.id), name=p.name, points=p.points)
        for i, p in enumerate(top, start=1)
    ]
