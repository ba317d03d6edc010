"""Background worker process.

RUN:  python -m app.worker

Same image as the API, different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

The worker drains the points_recompute queue.  Each task names one user;
the handler runs reconcile_points for that user, which writes the
persisted total only when it drifted and only if nobody else wrote it in
the meantime.  Handler failures are logged and the loop moves on; there
is no retry, since the next activity write for that user queues a fresh
recompute.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from typing import Any
from uuid import UUID

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.repos.registry import repos
from app.services import points_service
from app.services.task_queue import (
    POINTS_RECOMPUTE_QUEUE,
    InMemoryTaskQueue,
    Task,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

# How often the in-process consumer polls an empty in-memory queue.
INLINE_POLL_SECONDS = 0.2

logger = logging.getLogger("worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(POINTS_RECOMPUTE_QUEUE)
async def handle_points_recompute(payload: dict) -> None:
    user_id = UUID(payload["user_id"])
    result = await points_service.reconcile_points(repos, user_id)
    logger.info(
        "Recompute user=%s outcome=%s computed=%d",
        user_id,
        result.outcome,
        result.computed,
    )


# ---------------------------------------------------------------------------
# Worker loop
# ---------------------------------------------------------------------------


async def process_task(queue_name: str, task: Task) -> bool:
    """Run one task through its handler.  Returns False if it failed."""
    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
        return False
    logger.debug("Task %s on [%s] completed", task.id, queue_name)
    return True


async def drain(queue_name: str) -> int:
    """Process everything currently queued; returns the count."""
    processed = 0
    while (task := await task_queue.dequeue(queue_name, timeout=1)) is not None:
        await process_task(queue_name, task)
        processed += 1
    return processed


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS)
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        idle = True
        for queue_name in queues:
            task = await task_queue.dequeue(queue_name, timeout=1)
            if task is None:
                continue
            idle = False
            await process_task(queue_name, task)
        if idle and isinstance(task_queue, InMemoryTaskQueue):
            # In-memory dequeue returns immediately; avoid a hot loop.
            await asyncio.sleep(1)


@contextlib.asynccontextmanager
async def in_process_worker() -> AsyncIterator[None]:
    """Drain the in-memory queue inside the API process.

    Without REDIS_URL the queue lives in this process, so a separate
    worker could never see it.  With Redis this does nothing and
    `python -m app.worker` does the draining.
    """
    if not isinstance(task_queue, InMemoryTaskQueue):
        yield
        return

    async def consume() -> None:
        while True:
            await drain(POINTS_RECOMPUTE_QUEUE)
            await asyncio.sleep(INLINE_POLL_SECONDS)

    consumer = asyncio.create_task(consume(), name="in-process-worker")
    logger.info("In-process worker started for [%s]", POINTS_RECOMPUTE_QUEUE)
    try:
        yield
    finally:
        consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer
        logger.info("In-process worker stopped")


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
