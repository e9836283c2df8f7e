"""
FastAPI application entry point.

This module sets up the FastAPI application with all middleware,
routers, and the sync engine lifecycle.
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers import profile, plan, checkin, team
from core.config import settings
from core.logging import setup_logging
from core.exceptions import APIException
from core.store import build_store, get_redis_client
from core.transport import RedisPubSubTransport
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from services.session_repository import SessionRepository
from services.sync_engine import ProgressSyncEngine
import asyncio
import logging
import time

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="SlimFit Sync Engine API",
    description="Weight-loss trajectory, daily check-ins, coin penalties and team presence/chat sync",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)


async def _pump_team_channel(engine: ProgressSyncEngine):
    """Drain inbound team messages on the event loop, one batch per tick."""
    while True:
        try:
            engine.pump(0)
        except Exception as e:
            logger.error(f"Team channel pump failed: {e}", exc_info=True)
        await asyncio.sleep(settings.BROKER_PUMP_INTERVAL_S)


@app.on_event("startup")
async def start_sync_engine():
    """Load the local session and reconnect to the team, if any."""
    repository = SessionRepository(build_store())
    engine = ProgressSyncEngine(
        repository,
        transport_factory=RedisPubSubTransport,
        broker_url=settings.BROKER_URL,
        presence_stale_after_s=settings.PRESENCE_STALE_AFTER_S,
    )
    engine.start()
    app.state.engine = engine
    app.state.pump_task = asyncio.create_task(_pump_team_channel(engine))
    logger.info("Sync engine started")


@app.on_event("shutdown")
async def stop_sync_engine():
    task = getattr(app.state, "pump_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        engine.close()
        logger.info("Sync engine stopped")


# CORS middleware
# Production: set CORS_ORIGINS env var (comma-separated)
# Development: DEBUG=True allows all origins
if settings.DEBUG:
    allowed_origins = ["*"]
elif settings.CORS_ORIGINS:
    allowed_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
else:
    # Fallback for local development
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information."""
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            }
        }
    )

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(
            f"Response: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "process_time_ms": round(process_time * 1000, 2),
                }
            }
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response
    except Exception as e:
        logger.error(
            f"Request failed: {request.method} {request.url.path}",
            exc_info=True,
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                }
            }
        )
        raise


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    """Consistent error body: detail plus a machine-readable error code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
        headers=exc.headers,
    )


# Error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
            }
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
async def health():
    """
    Health check for uptime monitors.

    Always 200 while the engine is up: Redis being down only means the
    session is kept in memory and team sync is retrying.
    """
    checks = {
        "redis": {"status": "unknown", "latency_ms": None},
        "team_channel": {"status": "none", "team_id": None},
    }

    start = time.time()
    try:
        redis = get_redis_client()
        if redis:
            redis.ping()
            checks["redis"]["status"] = "healthy"
        else:
            checks["redis"]["status"] = "unavailable"
    except (RedisConnectionError, RedisTimeoutError) as e:
        checks["redis"]["status"] = "error"
        checks["redis"]["error"] = str(e)
    checks["redis"]["latency_ms"] = round((time.time() - start) * 1000, 2)

    engine = getattr(app.state, "engine", None)
    if engine is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "engine": "unavailable", "checks": checks},
        )

    if engine.profile is not None and engine.profile.team_id:
        checks["team_channel"]["team_id"] = engine.profile.team_id
        connected = engine.channel is not None and engine.channel.connected
        checks["team_channel"]["status"] = "connected" if connected else "reconnecting"

    all_healthy = checks["redis"]["status"] == "healthy" and checks["team_channel"]["status"] != "reconnecting"
    return {
        "status": "healthy" if all_healthy else "degraded",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "timestamp": time.time(),
        "checks": checks,
    }


@app.get("/ping")
async def ping():
    """
    Minimal ping endpoint for uptime monitors.
    No dependencies checked - just confirms the API is responding.
    """
    return {"pong": True}


# Include routers
app.include_router(profile.router)
app.include_router(plan.router)
app.include_router(checkin.router)
app.include_router(team.router)
