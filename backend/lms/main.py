"""
FastAPI application entry point.

Configures the app, mounts the routers, installs the envelope exception
handlers and manages startup/shutdown (Redis, database check, scheduler).
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lms.api.v1.router import api_router
from lms.core.config import get_settings
from lms.core.logging import get_logger, setup_logging
from lms.db.redis import check_redis_connection, close_redis, init_redis
from lms.db.session import check_database_connection, engine
from lms.schemas.base import ApiResponse
from lms.schemas.health import HealthResponse
from lms.services.notification import get_notification_service
from lms.services.sweep import build_scheduler

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle.

    Startup:
        - Configure logging
        - Connect to Redis
        - Check the database
        - Start the sweep scheduler (SCHEDULER_ENABLED)

    Shutdown:
        - Stop the scheduler and wait for running jobs
        - Flush pending notifications
        - Close Redis and the database pool
    """
    # Startup
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")

    try:
        await init_redis()
        if await check_redis_connection():
            logger.info("Connected to Redis")
        else:
            logger.warning("Redis unavailable - cache, rate limiting and sweep locks disabled")
    except Exception as e:
        logger.warning(f"Failed to connect to Redis: {e}")

    success, error = await check_database_connection()
    if success:
        logger.info("Connected to the database")
    else:
        logger.warning(f"Database unavailable: {error}")

    scheduler = build_scheduler(settings)
    app.state.scheduler = scheduler
    if settings.SCHEDULER_ENABLED:
        await scheduler.start()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}")
    await scheduler.stop()
    await get_notification_service().drain()
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="REST API for the Electrical Engineering department library",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.include_router(api_router)


# ==========================================
# Error envelope
# ==========================================

def _envelope(status_code: int, message: str, errors: list[str] | None = None, headers=None):
    body = ApiResponse.fail(message, errors).model_dump()
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """HTTP and domain errors; domain errors report their code in ``errors``."""
    code = getattr(exc, "code", None)
    return _envelope(
        exc.status_code,
        str(exc.detail),
        [code] if code else None,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in jsonable_encoder(exc.errors()):
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return _envelope(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation failed", errors)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Application status",
)
async def health_check(request: Request) -> HealthResponse:
    """
    Health check for load balancers and monitoring.

    Reports "degraded" when the database is unreachable.
    """
    database_ok, _ = await check_database_connection()
    redis_ok = await check_redis_connection()
    scheduler = getattr(request.app.state, "scheduler", None)

    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        app_name=settings.APP_NAME,
        environment=settings.ENVIRONMENT,
        database=database_ok,
        redis=redis_ok,
        scheduler=bool(scheduler and scheduler.running),
    )
