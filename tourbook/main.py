"""
Tour Booking API - Main Application Entry Point

A seat-inventory and booking lifecycle engine for guided tours:
- Time-boxed seat holds debited by conditional UPDATE, never oversold
- Compare-and-set booking transitions with an explicit state machine
- Single-flight background sweeps for expired holds and finished tours
- Redis caching, structured logging and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tourbook.api.middleware import RequestLoggingMiddleware
from tourbook.api.router import api_router
from tourbook.core.config import get_settings
from tourbook.core.exceptions import BookingError
from tourbook.core.logging import get_logger, setup_logging
from tourbook.core.metrics import metrics_endpoint
from tourbook.db.session import get_session_factory
from tourbook.infrastructure.redis_client import close_redis, get_redis
from tourbook.services.cache_service import get_cache_stats
from tourbook.services.sweeper import build_background_tasks

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    tasks = []
    if settings.BACKGROUND_TASKS_ENABLED:
        tasks = build_background_tasks(get_session_factory())
        for task in tasks:
            task.start()

    yield

    for task in tasks:
        await task.stop()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tour booking API with time-boxed seat holds and payment review",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
