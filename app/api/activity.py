"""Student activity endpoints.

  POST /v1/videos/{video_id}/progress        watch percentage, awards 50/100
  POST /v1/videos/{video_id}/complete        idempotent completion
  GET  /v1/videos?class_number=              video catalogue
  GET  /v1/challenges?class_number=          active challenges + my status
  POST /v1/challenges/{challenge_id}/responses

Every write queues a points recompute for the caller; the response does
not wait for it.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.dependencies import require_user
from app.api.errors import service_errors
from app.models.principal import Principal
from app.repos.registry import repos
from app.services import activity_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["activity"])


class WatchProgressIn(BaseModel):
    watch_percentage: float = Field(ge=0)


class WatchProgressOut(BaseModel):
    video_id: int
    watch_percentage: float
    points_awarded: int
    points_delta: int


class CompletionOut(BaseModel):
    video_id: int
    newly_completed: bool


class VideoOut(BaseModel):
    video_id: int
    class_number: int
    title: str
    url: str


class ChallengeOut(BaseModel):
    id: int
    class_number: int
    challenge_number: int
    topic: str
    description: str | None
    points_completed: int | None
    points_tried: int | None
    my_status: str | None = None


class ChallengeResponseIn(BaseModel):
    status: Literal["Completed", "Tried", "Not Completed"]


class ChallengeResponseOut(BaseModel):
    challenge_id: int
    status: str
    submitted_at: int


@router.post("/v1/videos/{video_id}/progress", response_model=WatchProgressOut)
async def post_watch_progress(
    video_id: int,
    payload: WatchProgressIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> WatchProgressOut:
    with service_errors():
        result = await activity_service.record_watch_progress(
            repos, principal.user_uuid, video_id, payload.watch_percentage
        )
    return WatchProgressOut(
        video_id=video_id,
        watch_percentage=result.progress.watch_percentage,
        points_awarded=result.progress.points_awarded,
        points_delta=result.points_delta,
    )


@router.post("/v1/videos/{video_id}/complete", response_model=CompletionOut)
async def post_video_complete(
    video_id: int,
    principal: Annotated[Principal, Depends(require_user)],
) -> CompletionOut:
    with service_errors():
        first = await activity_service.complete_video(
            repos, principal.user_uuid, video_id
        )
    return CompletionOut(video_id=video_id, newly_completed=first)


@router.get("/v1/videos", response_model=list[VideoOut])
async def list_videos(
    _principal: Annotated[Principal, Depends(require_user)],
    class_number: Annotated[int | None, Query(ge=1)] = None,
) -> list[VideoOut]:
    videos = await repos.content.list_videos(class_number)
    return [
        VideoOut(
            video_id=v.video_id, class_number=v.class_number, title=v.title, url=v.url
        )
        for v in videos
    ]


@router.get("/v1/challenges", response_model=list[ChallengeOut])
async def list_challenges(
    principal: Annotated[Principal, Depends(require_user)],
    class_number: Annotated[int | None, Query(ge=1)] = None,
) -> list[ChallengeOut]:
    if class_number is None:
        class_number = await repos.content.get_active_class()
    challenges = await repos.content.list_challenges(class_number, active_only=True)
    mine = {
        r.challenge_id: r.status
        for r in await repos.activity.list_challenge_responses(principal.user_uuid)
    }
    return [
        ChallengeOut(
            id=c.id,
            class_number=c.class_number,
            challenge_number=c.challenge_number,
            topic=c.topic,
            description=c.description,
            points_completed=c.points_completed,
            points_tried=c.points_tried,
            my_status=mine.get(c.id),
        )
        for c in challenges
    ]


@router.post(
    "/v1/challenges/{challenge_id}/responses", response_model=ChallengeResponseOut
)
async def post_challenge_response(
    challenge_id: int,
    payload: ChallengeResponseIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> ChallengeResponseOut:
    with service_errors():
        response = await activity_service.submit_challenge_response(
            repos, principal.user_uuid, challenge_id, payload.status
        )
    return ChallengeResponseOut(
        challenge_id=response.challenge_id,
        status=response.status,
        submitted_at=response.submitted_at,
    )
