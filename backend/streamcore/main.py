"""FastAPI application entry point.

Live stream events (tournaments, bonus hunts, guess-the-balance) and
provably-fair giveaways.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from streamcore import __version__
from streamcore.api import (
    events_admin_router,
    events_router,
    giveaways_admin_router,
    giveaways_router,
)
from streamcore.api.errors import (
    event_core_error_handler,
    general_exception_handler,
    http_exception_handler,
)
from streamcore.config import get_settings
from streamcore.logging_config import clear_context, configure_logging, get_logger
from streamcore.repositories.sql import SqlIdentityProvider, SqlRepository
from streamcore.utils.db import close_db, get_engine, get_session_factory, init_db
from streamcore.utils.distributed_lock import AggregateLockManager
from streamcore.utils.errors import EventCoreError
from streamcore.utils.redis_client import close_redis, get_redis_client, init_redis

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
    app_env=settings.app_env,
)

logger = get_logger(__name__)


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)

    try:
        await init_db()
        session_factory = get_session_factory()
        _app.state.repository = SqlRepository(session_factory)
        _app.state.identity_provider = SqlIdentityProvider(session_factory)
        logger.info("database_ready")

        if settings.distributed_locks_enabled:
            redis_instance = await init_redis()
            _app.state.lock_manager = AggregateLockManager(
                redis_instance,
                default_lock_timeout_ms=settings.lock_timeout_ms,
                default_acquire_timeout_ms=settings.lock_acquire_timeout_ms,
            )
            logger.info("distributed_locks_enabled")
        else:
            _app.state.lock_manager = None

        logger.info("application_started")
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    yield

    logger.info("application_stopping")
    try:
        await close_db()
        await close_redis()
        logger.info("application_stopped")
    except Exception as e:
        logger.error("shutdown_error", error=str(e))


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="StreamCore API",
    version=__version__,
    description="Live stream events and giveaways",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add X-Request-ID header to all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = datetime.now(timezone.utc)

        clear_context()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(duration, 3),
            request_id=request_id,
        )
        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "X-Request-ID",
        "X-API-Key",
        "X-Admin-User-Id",
    ],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================

app.add_exception_handler(EventCoreError, event_core_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/health", tags=["Health"], summary="Health check endpoint")
async def health_check() -> dict[str, Any]:
    """Database and Redis connectivity."""
    health_status: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "services": {
            "database": "unknown",
            "redis": "disabled",
        },
    }
    overall_healthy = True

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {e}"
        overall_healthy = False
        logger.error("database_health_check_failed", error=str(e))

    if settings.distributed_locks_enabled:
        try:
            current_redis = get_redis_client()
            if current_redis:
                await current_redis.ping()
                health_status["services"]["redis"] = "healthy"
            else:
                health_status["services"]["redis"] = "not initialized"
                overall_healthy = False
        except Exception as e:
            health_status["services"]["redis"] = f"unhealthy: {e}"
            overall_healthy = False
            logger.error("redis_health_check_failed", error=str(e))

    if not overall_healthy:
        health_status["status"] = "degraded"
    return health_status


@app.get("/health/live", tags=["Health"], summary="Liveness probe")
async def liveness_probe() -> dict[str, str]:
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"], summary="Readiness probe")
async def readiness_probe():
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as e:
        logger.error("readiness_probe_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready", "error": str(e)},
        )


# =============================================================================
# API Routers
# =============================================================================

app.include_router(events_router)
app.include_router(events_admin_router)
app.include_router(giveaways_router)
app.include_router(giveaways_admin_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "streamcore.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
