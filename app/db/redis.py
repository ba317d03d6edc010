"""Shared Redis client.

Three services sit on it: the ledger cache ("cache:ledger:{user_id}"),
the points_recompute task list, and the per-user notification channels.
Each picks its Redis implementation when `redis_pool` is set and its
in-memory one when REDIS_URL is unset.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

# Each websocket feed holds one pub/sub connection for its lifetime.
MAX_CONNECTIONS = 50

redis_pool: aioredis.Redis | None = (  # type: ignore[type-arg]
    aioredis.from_url(
        SETTINGS.redis_url, decode_responses=True, max_connections=MAX_CONNECTIONS
    )
    if SETTINGS.redis_url
    else None
)


@asynccontextmanager
async def lifespan_redis() -> AsyncIterator[None]:
    if redis_pool is None:
        logger.info("REDIS_URL not set, cache, queue and broker run in-process")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis reachable")
    except Exception:
        logger.exception("Redis unreachable on startup")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis pool closed")
