"""
FastAPI Application Entry Point.

This is the main application file for the Client Dues Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from dues_backend.app.core.config import settings
from dues_backend.app.api.v1.router import router as api_v1_router
from dues_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from dues_backend.app.core.redis_client import ping_redis
from dues_backend.app.db.session import engine, Base
from dues_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from dues_backend.app.models.user import User
from dues_backend.app.models.audit_log import AuditLog
from dues_backend.app.models.meeting import Meeting
from dues_backend.app.models.daily_due import DailyDue
from dues_backend.app.models.due_adjustment import DueAdjustment
from dues_backend.app.models.advance import AdvanceBalance, AdvanceConsumption
from dues_backend.app.models.payment import Payment
from dues_backend.app.models.notification import Notification

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Daily dues, advances and payment settlement for meeting clients",
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


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Client Dues Backend API",
        "docs": "/docs",
        "health": "/health",
    }
