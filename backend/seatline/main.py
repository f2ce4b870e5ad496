"""
Seatline Booking API - Main Application Entry Point

Bus seat inventory and checkout service demonstrating:
- Per-seat compare-and-swap so no seat is ever sold twice
- All-or-nothing multi-seat checkout, transactional or compensating
- A background reaper that reclaims seats of unpaid bookings
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from seatline.core.config import get_settings
from seatline.core.exceptions import BookingError
from seatline.core.logging import setup_logging, get_logger
from seatline.core.metrics import metrics_endpoint
from seatline.api.router import api_router
from seatline.api.middleware import RequestLoggingMiddleware
from seatline.db.session import AsyncSessionLocal
from seatline.services.cache_service import get_redis, close_redis, get_cache_stats
from seatline.services.notification_service import get_dispatcher
from seatline.services.reaper import ExpiryReaper
from seatline.services.strategy_factory import get_committer

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    committer = get_committer()
    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        commit_strategy=committer.name,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Serving seat maps without cache")

    reaper = None
    if settings.REAPER_ENABLED:
        reaper = ExpiryReaper(
            AsyncSessionLocal,
            ttl_minutes=settings.REAPER_TTL_MINUTES,
            interval_seconds=settings.REAPER_INTERVAL_SECONDS,
        )
        reaper.start()
    app.state.reaper = reaper

    yield

    if reaper:
        await reaper.stop()
    await get_dispatcher().drain()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Bus seat inventory and checkout API with concurrency-safe seat sales",
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
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("booking_internal_error", error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    reaper = getattr(app.state, "reaper", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "commit_strategy": get_committer().name,
        "reaper": "running" if reaper else "disabled",
        "cache": cache_stats,
    }


@app.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
