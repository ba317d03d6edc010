"""Content managed by staff: challenges, videos, and the active class."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Protocol

from app.models.activity import Challenge, Video

DEFAULT_ACTIVE_CLASS = 1


class ContentRepo(Protocol):
    async def list_challenges(
        self, class_number: int | None = None, *, active_only: bool = False
    ) -> list[Challenge]: ...
    async def get_challenge(self, challenge_id: int) -> Challenge | None: ...
    async def add_challenge(self, challenge: Challenge) -> Challenge: ...
    async def update_challenge(
        self, challenge_id: int, changes: dict[str, Any]
    ) -> Challenge | None: ...
    async def delete_challenge(self, challenge_id: int) -> bool: ...
    async def list_videos(self, class_number: int | None = None) -> list[Video]: ...
    async def get_video(self, video_id: int) -> Video | None: ...
    async def add_video(self, video: Video) -> Video: ...
    async def delete_video(self, video_id: int) -> bool: ...
    async def get_active_class(self) -> int: ...
    async def set_active_class(self, class_number: int) -> None: ...


class InMemoryContentRepo:
    def __init__(self) -> None:
        self._challenges: dict[int, Challenge] = {}
        self._videos: dict[int, Video] = {}
        self._active_class = DEFAULT_ACTIVE_CLASS

    def clear(self) -> None:
        self._challenges.clear()
        self._videos.clear()
        self._active_class = DEFAULT_ACTIVE_CLASS

    async def list_challenges(
        self, class_number: int | None = None, *, active_only: bool = False
    ) -> list[Challenge]:
        found = [
            c
            for c in self._challenges.values()
            if (class_number is None or c.class_number == class_number)
            and (c.is_active or not active_only)
        ]
        return sorted(found, key=lambda c: (c.class_number, c.challenge_number))

    async def get_challenge(self, challenge_id: int) -> Challenge | None:
        return self._challenges.get(challenge_id)

    async def add_challenge(self, challenge: Challenge) -> Challenge:
        # id <= 0 means "assign one", mirroring a serial column
        if challenge.id <= 0:
            challenge = replace(challenge, id=max(self._challenges, default=0) + 1)
        if challenge.id in self._challenges:
            raise ValueError("challenge id already exists")
        self._challenges[challenge.id] = challenge
        return challenge

    async def update_challenge(
        self, challenge_id: int, changes: dict[str, Any]
    ) -> Challenge | None:
        c = self._challenges.get(challenge_id)
        if c is None:
            return None
        updated = replace(c, **changes)
        self._challenges[challenge_id] = updated
        return updated

    async def delete_challenge(self, challenge_id: int) -> bool:
        return self._challenges.pop(challenge_id, None) is not None

    async def list_videos(self, class_number: int | None = None) -> list[Video]:
        found = [
            v
            for v in self._videos.values()
            if class_number is None or v.class_number == class_number
        ]
        return sorted(found, key=lambda v: v.video_id)

    async def get_video(self, video_id: int) -> Video | None:
        return self._videos.get(video_id)

    async def add_video(self, video: Video) -> Video:
        if video.video_id <= 0:
            video = replace(video, video_id=max(self._videos, default=0) + 1)
        if video.video_id in self._videos:
            raise ValueError("video id already exists")
        self._videos[video.video_id] = video
        return video

    async def delete_video(self, video_id: int) -> bool:
        return self._videos.pop(video_id, None) is not None

    async def get_active_class(self) -> int:
        return self._active_class

    async def set_active_class(self, class_number: int) -> None:
        self._active_class = class_number
