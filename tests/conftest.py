from __future__ import annotations

import asyncio
import uuid
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.activity import Challenge, Video
from app.models.profile import UserProfile
from app.repos.registry import repos
from app.services import token_service
from app.services.cache import cache_service
from app.services.notification_service import broker
from app.services.task_queue import task_queue


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the in-memory repositories between tests."""
    repos.profiles._by_id.clear()  # type: ignore[attr-defined]
    repos.activity.clear()  # type: ignore[attr-defined]
    repos.content.clear()  # type: ignore[attr-defined]
    repos.notifications._by_id.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_broker() -> None:
    if hasattr(broker, "clear"):
        broker.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    user_id: UUID | str | None = None,
    roles: list[str] | None = None,
    name: str | None = None,
    email: str | None = None,
) -> str:
    """Create a valid HS256 JWT the way the identity provider does."""
    return token_service.create_access_token(
        sub=str(user_id or uuid.uuid4()), roles=roles, name=name, email=email
    )


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def seed_profile(
    name: str = "Student", role: str = "Student", points: int = 0
) -> UserProfile:
    """Persist a profile in the in-memory repo and return it."""
    profile = UserProfile(
        id=uuid.uuid4(),
        name=name,
        email=f"{name.lower()}@example.com",
        role=role,
        points=points,
    )
    asyncio.run(repos.profiles.add(profile))
    return profile


def seed_video(class_number: int = 1, title: str = "Video") -> Video:
    return asyncio.run(
        repos.content.add_video(Video(video_id=0, class_number=class_number, title=title))
    )


def seed_challenge(
    class_number: int = 1,
    challenge_number: int = 1,
    topic: str = "Challenge",
    **points,
) -> Challenge:
    return asyncio.run(
        repos.content.add_challenge(
            Challenge(
                id=0,
                class_number=class_number,
                challenge_number=challenge_number,
                topic=topic,
                **points,
            )
        )
    )


@pytest.fixture
def student() -> UserProfile:
    return seed_profile(name="Alice")


@pytest.fixture
def student_token(student: UserProfile) -> str:
    return mint_token(student.id, roles=["Student"], name=student.name)


@pytest.fixture
def admin_token() -> str:
    return mint_token(roles=["Admin"], name="Admin")
