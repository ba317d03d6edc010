from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.activity import router as activity_router
from app.api.admin import router as admin_router
from app.api.health import router as health_router
from app.api.leaderboard import router as leaderboard_router
from app.api.me import router as me_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.notifications import router as notifications_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware, install_log_filter
from app.worker import in_process_worker

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
# Logger filters skip records propagated from child loggers; the handler
# sees all of them.
for _handler in logging.getLogger().handlers:
    install_log_filter(_handler)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order.
    async with lifespan_db():
        async with lifespan_redis():
            async with in_process_worker():
                yield


app = FastAPI(
    title="lms-points-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext -> Metrics -> CORS -> route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

# Probes first, then the student surface, then staff.
for router in (
    metrics_router,
    health_router,
    me_router,
    leaderboard_router,
    activity_router,
    notifications_router,
    admin_router,
):
    app.include_router(router)

logger.info(
    "lms-points-service started  env=%s log_level=%s port=%d reconcile_on_read=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.reconcile_on_read,
)
