"""Endpoints scoped to the calling user: profile, stats, points, rank."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel

from app.api.dependencies import require_user
from app.models.principal import Principal
from app.models.profile import UserProfile
from app.repos.registry import repos
from app.services import leaderboard_service, points_service, stats_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/me", tags=["me"])

# Highest-privilege role claim wins when provisioning.
_ROLE_PRECEDENCE = ("Admin", "Instructor", "Staff", "Student")


class ProfileOut(BaseModel):
    id: str
    name: str
    email: str
    role: str
    points: int

    @classmethod
    def from_profile(cls, p: UserProfile) -> ProfileOut:
        return cls(id=str(p.id), name=p.name, email=p.email, role=p.role, points=p.points)


class StatsOut(BaseModel):
    class_number: int
    videos_watched: int
    quizzes_completed: int
    challenges_completed: int
    attendance_count: int
    total_activities: int
    completion_percentage: int
    points: int
    level: int
    level_progress: int
    rank: int | None
    total_students: int


class LedgerEntryOut(BaseModel):
    id: str
    category: str
    title: str
    points: int
    occurred_at: int
    status: str | None = None


class ReconcileOut(BaseModel):
    outcome: str
    computed: int
    persisted: int | None


class RankOut(BaseModel):
    rank: int | None
    total_students: int
    points: int


class AttendanceSummaryOut(BaseModel):
    present: int
    absent: int
    leave: int
    total: int
    present_percentage: int


@router.post("/profile", response_model=ProfileOut)
async def provision_profile(
    principal: Annotated[Principal, Depends(require_user)],
    response: Response,
) -> ProfileOut:
    """Create the caller's profile from token claims; no-op if it exists."""
    existing = await repos.profiles.get(principal.user_uuid)
    if existing is not None:
        return ProfileOut.from_profile(existing)

    role = next((r for r in _ROLE_PRECEDENCE if principal.has_role(r)), "Student")
    profile = UserProfile.new(
        id=principal.user_uuid,
        name=principal.name or "",
        email=principal.email or "",
        role=role,
    )
    await repos.profiles.add(profile)
    logger.info("Provisioned profile user=%s role=%s", profile.id, role)
    response.status_code = status.HTTP_201_CREATED
    return ProfileOut.from_profile(profile)


@router.get("/profile", response_model=ProfileOut)
async def get_profile(
    principal: Annotated[Principal, Depends(require_user)],
) -> ProfileOut:
    profile = await repos.profiles.get(principal.user_uuid)
    if profile is None:
        raise HTTPException(status_code=404, detail="profile not found")
    return ProfileOut.from_profile(profile)


@router.get("/stats", response_model=StatsOut)
async def get_stats(
    principal: Annotated[Principal, Depends(require_user)],
    class_number: Annotated[int | None, Query(ge=1)] = None,
) -> StatsOut:
    stats = await stats_service.student_stats(
        repos, principal.user_uuid, class_number
    )
    return StatsOut(**asdict(stats))


@router.get("/points/history", response_model=list[LedgerEntryOut])
async def get_points_history(
    principal: Annotated[Principal, Depends(require_user)],
) -> list[LedgerEntryOut]:
    ledger = await points_service.points_history(repos.activity, principal.user_uuid)
    return [LedgerEntryOut(**asdict(e)) for e in ledger]


@router.post("/points/reconcile", response_model=ReconcileOut)
async def reconcile_my_points(
    principal: Annotated[Principal, Depends(require_user)],
) -> ReconcileOut:
    result = await points_service.reconcile_points(repos, principal.user_uuid)
    if result.outcome == points_service.ReconcileOutcome.MISSING_USER:
        raise HTTPException(status_code=404, detail="profile not found")
    return ReconcileOut(
        outcome=result.outcome.value,
        computed=result.computed,
        persisted=result.persisted,
    )


@router.get("/rank", response_model=RankOut)
async def get_rank(
    principal: Annotated[Principal, Depends(require_user)],
) -> RankOut:
    r = await leaderboard_service.rank_of(repos.profiles, principal.user_uuid)
    return RankOut(rank=r.rank, total_students=r.total_students, points=r.points)


@router.get("/attendance", response_model=AttendanceSummaryOut)
async def get_attendance(
    principal: Annotated[Principal, Depends(require_user)],
) -> AttendanceSummaryOut:
    summary = await stats_service.attendance_summary(repos, principal.user_uuid)
    return AttendanceSummaryOut(**asdict(summary))
