"""Queue for points_recompute tasks.

The persisted `points` column is treated as a materialized view over the
activity tables.  Writes do not correct it inline; they push a task
naming the user, and the worker (app.worker) pops tasks and reconciles.

Redis layout: one list per queue at "tasks:{queue}".  Producers LPUSH,
the worker BRPOPs, so tasks come out oldest first.  Delivery is
at-most-once; a task lost to a worker crash is covered by the next write
for that user or by an admin reconcile-all.
"""

from __future__ import annotations

import json
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from typing import Protocol, runtime_checkable

from app.core.metrics import QUEUE_DEPTH
from app.db.redis import redis_pool

POINTS_RECOMPUTE_QUEUE = "points_recompute"


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    queue: str
    payload: dict  # {"user_id": "<uuid>"} for points_recompute

    @staticmethod
    def new(queue: str, payload: dict) -> Task:
        return Task(id=uuid.uuid4().hex, queue=queue, payload=payload)


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        """Next task, or None when nothing arrives within `timeout` seconds."""
        ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """Single-process queue; dequeue never blocks."""

    def __init__(self) -> None:
        self._queues: dict[str, deque[Task]] = {}

    def _pending(self, queue: str) -> deque[Task]:
        return self._queues.setdefault(queue, deque())

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        pending = self._pending(queue)
        pending.append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        pending = self._pending(queue)
        task = pending.popleft() if pending else None
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._pending(queue))


class RedisTaskQueue:
    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    @staticmethod
    def _list(queue: str) -> str:
        return f"tasks:{queue}"

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        depth = await self._redis.lpush(self._list(queue), json.dumps(asdict(task)))
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        popped = await self._redis.brpop([self._list(queue)], timeout=timeout)
        if popped is None:
            return None
        _, raw = popped
        return Task(**json.loads(raw))

    async def queue_length(self, queue: str) -> int:
        depth = await self._redis.llen(self._list(queue))
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return depth


task_queue: TaskQueue = (
    RedisTaskQueue(redis_pool) if redis_pool is not None else InMemoryTaskQueue()
)
