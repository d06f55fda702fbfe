"""
FastAPI Application Entry Point.

This is the main application file for the Field Staff Tracking Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fieldtrack.app.core.config import settings
from fieldtrack.app.api.v1.router import router as api_v1_router
from fieldtrack.app.core.dependencies import build_engine
from fieldtrack.app.core.observability import ObservabilityMiddleware, configure_logging
from fieldtrack.app.core.redis_client import close_redis, ping_redis
from fieldtrack.app.db.session import create_tables
from fieldtrack.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from fieldtrack.app.models.staff_member import StaffMember
from fieldtrack.app.models.staff_trip import StaffTrip
from fieldtrack.app.models.staff_visit import StaffVisit
from fieldtrack.app.models.performance_stat import StaffPerformanceStat
from fieldtrack.app.models.dlq import DeadLetterQueue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables and the tracking engine on startup.
    2. Waits for pending background writes and closes Redis on shutdown.
    """
    configure_logging(settings.debug)
    await create_tables()
    app.state.engine = build_engine()
    yield
    await app.state.engine.drain()
    logger.info("Pending trip/visit writes flushed")
    await close_redis()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="GPS trip and visit tracking for field staff",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": await ping_redis(),
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")
