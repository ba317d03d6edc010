"""Repository bundle shared by the API and the worker.

Same conditional pattern as the cache and task queue: Postgres repos when
DATABASE_URL is configured, in-memory repos otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.db.engine import async_session_factory
from app.repos.activity_repo import ActivityRepo, InMemoryActivityRepo
from app.repos.content_repo import ContentRepo, InMemoryContentRepo
from app.repos.notification_repo import InMemoryNotificationRepo, NotificationRepo
from app.repos.profile_repo import InMemoryProfileRepo, ProfileRepo


@dataclass(frozen=True, slots=True)
class Repos:
    profiles: ProfileRepo
    activity: ActivityRepo
    content: ContentRepo
    notifications: NotificationRepo


def build_in_memory_repos() -> Repos:
    content = InMemoryContentRepo()
    return Repos(
        profiles=InMemoryProfileRepo(),
        activity=InMemoryActivityRepo(content),
        content=content,
        notifications=InMemoryNotificationRepo(),
    )


def build_repos() -> Repos:
    if async_session_factory is None:
        return build_in_memory_repos()

    from app.repos.pg_activity_repo import PgActivityRepo
    from app.repos.pg_content_repo import PgContentRepo
    from app.repos.pg_notification_repo import PgNotificationRepo
    from app.repos.pg_profile_repo import PgProfileRepo

    return Repos(
        profiles=PgProfileRepo(async_session_factory),
        activity=PgActivityRepo(async_session_factory),
        content=PgContentRepo(async_session_factory),
        notifications=PgNotificationRepo(async_session_factory),
    )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

repos = build_repos()
