"""User notifications: persisted rows plus live push.

Every notification is stored first and then published on the user's
channel.  Live delivery is at-most-once with no replay: a client that is
not subscribed when a notification is published gets it only by
refetching the recent list (list_recent), which is the recovery path.

Two broker implementations, picked the same way as the cache and queue:

  RedisNotificationBroker    pub/sub channel "notifications:{user_id}",
                             reaches subscribers on every API instance
  InMemoryNotificationBroker asyncio.Queue per subscriber, single process
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import asdict
from typing import Protocol
from uuid import UUID

from app.core.metrics import NOTIFICATIONS_PUBLISHED
from app.db.redis import redis_pool
from app.models.notification import Notification
from app.repos.notification_repo import RECENT_LIMIT, NotificationRepo

logger = logging.getLogger(__name__)


def channel_for(user_id: UUID) -> str:
    return f"notifications:{user_id}"


class Subscription(Protocol):
    async def next_message(self, timeout: float | None = None) -> dict | None:
        """Wait for the next message; None when the timeout passes first."""
        ...


class NotificationBroker(Protocol):
    async def publish(self, user_id: UUID, message: dict) -> None: ...
    def subscribe(
        self, user_id: UUID
    ) -> AbstractAsyncContextManager[Subscription]: ...


# ---------------------------------------------------------------------------
# In-memory broker
# ---------------------------------------------------------------------------


class _QueueSubscription:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[dict] = asyncio.Queue()

    async def next_message(self, timeout: float | None = None) -> dict | None:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except TimeoutError:
            return None


class InMemoryNotificationBroker:
    def __init__(self) -> None:
        self._subscribers: dict[UUID, set[_QueueSubscription]] = {}

    def clear(self) -> None:
        self._subscribers.clear()

    def subscriber_count(self, user_id: UUID) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def publish(self, user_id: UUID, message: dict) -> None:
        for sub in list(self._subscribers.get(user_id, ())):
            sub.queue.put_nowait(message)

    @asynccontextmanager
    async def subscribe(self, user_id: UUID) -> AsyncIterator[Subscription]:
        sub = _QueueSubscription()
        self._subscribers.setdefault(user_id, set()).add(sub)
        try:
            yield sub
        finally:
            subs = self._subscribers.get(user_id)
            if subs is not None:
                subs.discard(sub)
                if not subs:
                    del self._subscribers[user_id]


# ---------------------------------------------------------------------------
# Redis broker
# ---------------------------------------------------------------------------


class _PubSubSubscription:
    def __init__(self, pubsub) -> None:
        self._pubsub = pubsub

    async def next_message(self, timeout: float | None = None) -> dict | None:
        msg = await self._pubsub.get_message(
            ignore_subscribe_messages=True, timeout=timeout
        )
        if msg is None:
            return None
        return json.loads(msg["data"])


class RedisNotificationBroker:
    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def publish(self, user_id: UUID, message: dict) -> None:
        await self._redis.publish(channel_for(user_id), json.dumps(message, default=str))

    @asynccontextmanager
    async def subscribe(self, user_id: UUID) -> AsyncIterator[Subscription]:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel_for(user_id))
        try:
            yield _PubSubSubscription(pubsub)
        finally:
            await pubsub.unsubscribe(channel_for(user_id))
            await pubsub.aclose()


if redis_pool is not None:
    broker: NotificationBroker = RedisNotificationBroker(redis_pool)
else:
    broker = InMemoryNotificationBroker()


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def to_message(n: Notification) -> dict:
    data = asdict(n)
    data["id"] = str(n.id)
    data["user_id"] = str(n.user_id)
    return data


async def notify(
    notifications: NotificationRepo,
    *,
    user_id: UUID,
    type: str,
    title: str,
    message: str,
    now: int | None = None,
) -> Notification:
    """Persist a notification, then push it to any live subscriber."""
    n = Notification.new(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        created_at=now if now is not None else int(time.time()),
    )
    await notifications.add(n)
    NOTIFICATIONS_PUBLISHED.labels(type=type).inc()

    try:
        await broker.publish(user_id, to_message(n))
    except Exception as exc:
        # The stored row is still delivered through the recent list.
        logger.warning("Live push failed for user=%s: %s", user_id, exc)
    return n


async def list_recent(
    notifications: NotificationRepo, user_id: UUID, limit: int = RECENT_LIMIT
) -> list[Notification]:
    return await notifications.list_recent(user_id, limit)


async def unread_count(notifications: NotificationRepo, user_id: UUID) -> int:
    recent = await notifications.list_recent(user_id, RECENT_LIMIT)
    return sum(1 for n in recent if not n.is_read)


async def mark_read(
    notifications: NotificationRepo, notification_id: UUID, user_id: UUID
) -> bool:
    return await notifications.mark_read(notification_id, user_id)


def subscribe(user_id: UUID) -> AbstractAsyncContextManager[Subscription]:
    """Live feed for one user; use as `async with subscribe(uid) as sub:`."""
    return broker.subscribe(user_id)
