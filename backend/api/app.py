"""
FastAPI application factory for the Verzot API service.

Creates the app with:
- REST routes (auth, users, tournaments, registrations, teams, players, matches, events, notifications)
- Middleware stack
- Health check endpoints
- Lifespan management (startup/shutdown)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional, Union

from fastapi import FastAPI
from sqlalchemy import text

from shared.config import get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import SERVICE_INFO, start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_db, get_redis, init_dependencies
from api.middleware import setup_middleware
from api.routes.auth import router as auth_router
from api.routes.events import router as events_router
from api.routes.matches import router as matches_router
from api.routes.notifications import router as notifications_router
from api.routes.players import router as players_router
from api.routes.registrations import router as registrations_router
from api.routes.teams import router as teams_router
from api.routes.tournaments import router as tournaments_router
from api.routes.users import router as users_router

logger = get_logger(__name__)

APP_VERSION = "1.0.0"

# Retry connection on startup (database/redis containers may still be booting)
_CONNECT_RETRY_ATTEMPTS = 10
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn, name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without DB/Redis."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Connects to Postgres (and Redis when enabled) on startup and
    disposes of both on shutdown.
    """
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()
    SERVICE_INFO.info({"version": APP_VERSION, "environment": settings.environment.value})

    db = DatabaseManager(settings)
    await _connect_with_retry(db.connect, "Database")
    if settings.db_auto_create:
        await db.create_all()

    redis: Optional[RedisManager] = None
    if settings.redis_enabled:
        redis = RedisManager(settings)
        await _connect_with_retry(redis.connect, "Redis")

    init_dependencies(db, redis)

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        redis_enabled=settings.redis_enabled,
    )

    yield

    await db.disconnect()
    if redis is not None:
        await redis.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without DB/Redis."""
    app = FastAPI(
        title="Verzot API",
        description="Tournament management: teams, matches, results and confirmations",
        version=APP_VERSION,
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware
    setup_middleware(app)

    # REST routes
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(tournaments_router)
    app.include_router(registrations_router)
    app.include_router(teams_router)
    app.include_router(players_router)
    app.include_router(matches_router)
    app.include_router(events_router)
    app.include_router(notifications_router)

    # Health check
    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> Dict[str, Union[str, bool, None]]:
        """Readiness check: database and, when enabled, redis."""
        redis = get_redis()
        db = get_db()

        db_ok = False
        redis_ok: Optional[bool] = None

        try:
            async with db.read_session() as session:
                await session.execute(text("SELECT 1"))
                db_ok = True
        except Exception as exc:
            logger.warning("readiness_db_failed", error=str(exc))

        if redis is not None:
            redis_ok = False
            try:
                await redis.client.ping()
                redis_ok = True
            except Exception as exc:
                logger.warning("readiness_redis_failed", error=str(exc))

        healthy = db_ok and redis_ok is not False
        return {
            "status": "ok" if healthy else "degraded",
            "database": db_ok,
            "redis": redis_ok,
        }

    return app
