"""Liveness and readiness probes.

  /health  liveness: the process answers.  Always 200; the body reports
           each backing service so a dashboard can show degraded state.
  /ready   readiness: 503 when a configured database or Redis is
           unreachable, so the load balancer stops routing here without
           restarting the container.

Unconfigured services report "not_configured" and never fail readiness;
the in-memory fallbacks serve in their place.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from sqlalchemy import text

from app.db.engine import engine
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
        return "ok"
    except Exception as e:
        logger.warning("Redis health check failed: %s", e)
        return "degraded"


async def _check_database() -> str:
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return "degraded"


async def _checks() -> dict[str, str]:
    return {"database": await _check_database(), "redis": await _check_redis()}


@router.get("/health")
async def health() -> dict:
    checks = await _checks()
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    checks = await _checks()
    if "degraded" in checks.values():
        return Response(status_code=503)
    return Response(status_code=200)
