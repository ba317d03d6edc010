"""Content management and cohort statistics for staff.

Every route requires one of the staff roles (Admin, Instructor, Staff).
Writes that change point values go through activity_service so the
affected students get a points recompute.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import require_staff
from app.api.errors import service_errors
from app.models.activity import Challenge, Video
from app.models.principal import Principal
from app.repos.registry import repos
from app.services import activity_service, leaderboard_service, stats_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])

Staff = Annotated[Principal, Depends(require_staff)]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class TopStudentOut(BaseModel):
    id: str
    name: str
    points: int
    videos_completed: int


class OverviewOut(BaseModel):
    students: int
    staff: int
    videos: int
    quizzes: int
    challenges: int
    attendance_classes: int
    top_students: list[TopStudentOut]


class ChallengeIn(BaseModel):
    class_number: int = Field(ge=1)
    challenge_number: int = Field(ge=1)
    topic: str = Field(min_length=1)
    description: str | None = None
    points_completed: int = Field(default=10, ge=0)
    points_tried: int = Field(default=5, ge=0)
    points_not_completed: int = Field(default=0, ge=0)
    is_active: bool = True


class ChallengeUpdateIn(BaseModel):
    class_number: int | None = Field(default=None, ge=1)
    challenge_number: int | None = Field(default=None, ge=1)
    topic: str | None = Field(default=None, min_length=1)
    description: str | None = None
    points_completed: int | None = Field(default=None, ge=0)
    points_tried: int | None = Field(default=None, ge=0)
    points_not_completed: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class ChallengeOut(BaseModel):
    id: int
    class_number: int
    challenge_number: int
    topic: str
    description: str | None
    points_completed: int | None
    points_tried: int | None
    points_not_completed: int
    is_active: bool

    @classmethod
    def from_challenge(cls, c: Challenge) -> ChallengeOut:
        return cls(
            id=c.id,
            class_number=c.class_number,
            challenge_number=c.challenge_number,
            topic=c.topic,
            description=c.description,
            points_completed=c.points_completed,
            points_tried=c.points_tried,
            points_not_completed=c.points_not_completed,
            is_active=c.is_active,
        )


class VideoIn(BaseModel):
    class_number: int = Field(ge=1)
    title: str = Field(min_length=1)
    url: str = ""


class VideoOut(BaseModel):
    video_id: int
    class_number: int
    title: str
    url: str

    @classmethod
    def from_video(cls, v: Video) -> VideoOut:
        return cls(
            video_id=v.video_id, class_number=v.class_number, title=v.title, url=v.url
        )


class ActiveClassIn(BaseModel):
    class_number: int = Field(ge=1)


class ActiveClassOut(BaseModel):
    class_number: int


class QuizGradeIn(BaseModel):
    user_id: UUID
    grade: int = Field(ge=0)
    feedback: str | None = None


class QuizGradesIn(BaseModel):
    class_number: int = Field(ge=1)
    total_points: int = Field(default=10, ge=1)
    grades: list[QuizGradeIn] = Field(min_length=1)


class AttendanceEntryIn(BaseModel):
    user_id: UUID
    status: Literal["Present", "Absent", "Leave"]


class AttendanceIn(BaseModel):
    session_topic: str | None = None
    date_of_class: int | None = None
    records: list[AttendanceEntryIn] = Field(min_length=1)


class QueuedOut(BaseModel):
    queued: int


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


@router.get("/overview", response_model=OverviewOut)
async def get_overview(principal: Staff) -> OverviewOut:
    logger.info("Admin overview requested by user=%s", principal.user_id)
    o = await stats_service.admin_overview(repos)
    return OverviewOut(
        students=o.students,
        staff=o.staff,
        videos=o.videos,
        quizzes=o.quizzes,
        challenges=o.challenges,
        attendance_classes=o.attendance_classes,
        top_students=[
            TopStudentOut(
                id=str(t.id),
                name=t.name,
                points=t.points,
                videos_completed=t.videos_completed,
            )
            for t in o.top_students
        ],
    )


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


@router.get("/challenges", response_model=list[ChallengeOut])
async def list_challenges(
    _principal: Staff,
    class_number: Annotated[int | None, Query(ge=1)] = None,
) -> list[ChallengeOut]:
    challenges = await repos.content.list_challenges(class_number)
    return [ChallengeOut.from_challenge(c) for c in challenges]


@router.post(
    "/challenges", response_model=ChallengeOut, status_code=status.HTTP_201_CREATED
)
async def create_challenge(payload: ChallengeIn, principal: Staff) -> ChallengeOut:
    created = await repos.content.add_challenge(Challenge(id=0, **payload.model_dump()))
    logger.info("Challenge %d created by user=%s", created.id, principal.user_id)
    return ChallengeOut.from_challenge(created)


@router.patch("/challenges/{challenge_id}", response_model=ChallengeOut)
async def update_challenge(
    challenge_id: int, payload: ChallengeUpdateIn, principal: Staff
) -> ChallengeOut:
    changes = payload.model_dump(exclude_unset=True)
    with service_errors():
        updated = await activity_service.update_challenge(repos, challenge_id, changes)
    logger.info("Challenge %d updated by user=%s", challenge_id, principal.user_id)
    return ChallengeOut.from_challenge(updated)


@router.delete("/challenges/{challenge_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_challenge(challenge_id: int, principal: Staff) -> None:
    with service_errors():
        await activity_service.delete_challenge(repos, challenge_id)
    logger.info("Challenge %d deleted by user=%s", challenge_id, principal.user_id)


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------


@router.get("/videos", response_model=list[VideoOut])
async def list_videos(
    _principal: Staff,
    class_number: Annotated[int | None, Query(ge=1)] = None,
) -> list[VideoOut]:
    return [VideoOut.from_video(v) for v in await repos.content.list_videos(class_number)]


@router.post("/videos", response_model=VideoOut, status_code=status.HTTP_201_CREATED)
async def create_video(payload: VideoIn, principal: Staff) -> VideoOut:
    created = await repos.content.add_video(Video(video_id=0, **payload.model_dump()))
    logger.info("Video %d created by user=%s", created.video_id, principal.user_id)
    return VideoOut.from_video(created)


@router.delete("/videos/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(video_id: int, principal: Staff) -> None:
    if not await repos.content.delete_video(video_id):
        raise HTTPException(status_code=404, detail=f"video {video_id} not found")
    logger.info("Video %d deleted by user=%s", video_id, principal.user_id)


# ---------------------------------------------------------------------------
# Active class
# ---------------------------------------------------------------------------


@router.get("/active-class", response_model=ActiveClassOut)
async def get_active_class(_principal: Staff) -> ActiveClassOut:
    return ActiveClassOut(class_number=await repos.content.get_active_class())


@router.put("/active-class", response_model=ActiveClassOut)
async def set_active_class(payload: ActiveClassIn, principal: Staff) -> ActiveClassOut:
    await repos.content.set_active_class(payload.class_number)
    logger.info(
        "Active class set to %d by user=%s", payload.class_number, principal.user_id
    )
    return ActiveClassOut(class_number=payload.class_number)


# ---------------------------------------------------------------------------
# Quizzes and attendance
# ---------------------------------------------------------------------------


@router.post(
    "/quizzes/{quiz_number}/grades",
    response_model=QueuedOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def grade_quiz(
    quiz_number: int, payload: QuizGradesIn, principal: Staff
) -> QueuedOut:
    with service_errors():
        queued = await activity_service.grade_quiz(
            repos,
            class_number=payload.class_number,
            quiz_number=quiz_number,
            grades={g.user_id: g.grade for g in payload.grades},
            total_points=payload.total_points,
            feedback={g.user_id: g.feedback for g in payload.grades if g.feedback},
        )
    logger.info("Quiz %d graded by user=%s", quiz_number, principal.user_id)
    return QueuedOut(queued=queued)


@router.delete("/quizzes/{quiz_number}", response_model=QueuedOut)
async def delete_quiz(quiz_number: int, principal: Staff) -> QueuedOut:
    queued = await activity_service.delete_quiz(repos, quiz_number)
    logger.info("Quiz %d deleted by user=%s", quiz_number, principal.user_id)
    return QueuedOut(queued=queued)


@router.post(
    "/attendance/{class_number}",
    response_model=QueuedOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def mark_attendance(
    class_number: int, payload: AttendanceIn, principal: Staff
) -> QueuedOut:
    with service_errors():
        queued = await activity_service.mark_attendance(
            repos,
            class_number=class_number,
            statuses={r.user_id: r.status for r in payload.records},
            session_topic=payload.session_topic,
            date_of_class=payload.date_of_class,
        )
    logger.info("Attendance for class %d marked by user=%s", class_number, principal.user_id)
    return QueuedOut(queued=queued)


@router.delete("/attendance/{class_number}", response_model=QueuedOut)
async def delete_attendance(class_number: int, principal: Staff) -> QueuedOut:
    queued = await activity_service.delete_attendance(repos, class_number)
    logger.info("Attendance for class %d deleted by user=%s", class_number, principal.user_id)
    return QueuedOut(queued=queued)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@router.post(
    "/reconcile-all", response_model=QueuedOut, status_code=status.HTTP_202_ACCEPTED
)
async def reconcile_all(principal: Staff) -> QueuedOut:
    """Queue a points recompute for every student."""
    students = await leaderboard_service.ranked_students(repos.profiles)
    queued = await activity_service.schedule_recompute(p.id for p in students)
    logger.info("Reconcile-all queued %d students, by user=%s", queued, principal.user_id)
    return QueuedOut(queued=queued)
