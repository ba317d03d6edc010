"""Async SQLAlchemy engine and session factory for the activity store.

Postgres repositories take `async_session_factory` and open one session
per operation.  The points aggregator issues its five source reads with
asyncio.gather, and one AsyncSession cannot serve concurrent statements,
so sessions are never shared between reads.

With DATABASE_URL unset, `engine` and `async_session_factory` are both
None and app.repos.registry builds in-memory repositories instead.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

# One stats request holds up to five connections at once.
POOL_SIZE = 10
MAX_OVERFLOW = 10


class Base(DeclarativeBase):
    pass


def _build_engine(url: str) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_pre_ping=True,
    )


engine: AsyncEngine | None = (
    _build_engine(SETTINGS.database_url) if SETTINGS.database_url else None
)
async_session_factory: async_sessionmaker[AsyncSession] | None = (
    async_sessionmaker(engine, expire_on_commit=False) if engine is not None else None
)


@asynccontextmanager
async def lifespan_db() -> AsyncIterator[None]:
    """Check the activity store on startup and release the pool on shutdown."""
    if engine is None:
        logger.info("DATABASE_URL not set, activity data lives in memory")
        yield
        return

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Activity store reachable at %s", engine.url.render_as_string())
    except Exception:
        # /ready reports the outage; the process stays up.
        logger.exception("Activity store unreachable on startup")

    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database pool disposed")
