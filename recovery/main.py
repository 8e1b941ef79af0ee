"""
Account Recovery Service - FastAPI Application

Main entry point for the application.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recovery import __version__
from recovery.core.config import settings
from recovery.core.database import close_db
from recovery.core.exceptions import register_exception_handlers
from recovery.core.http_client import close_http_client
from recovery.core.logging_config import setup_logging
from recovery.middleware.rate_limit import RateLimitMiddleware
from recovery.api.v1 import router as api_v1_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    setup_logging()
    logger.info(
        f"Starting account recovery service (store={settings.STORE_BACKEND}, "
        f"email={settings.EMAIL_PROVIDER})"
    )
    yield
    # Shutdown
    logger.info("Shutting down account recovery service")
    await close_http_client()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title="Account Recovery Service",
    description="Password reset with emailed one-time codes.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Per-client throttle on the recovery routes
app.add_middleware(RateLimitMiddleware)

# Configure CORS (outermost, so throttled responses carry the headers too)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API routers
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Health status and environment info.
    """
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__,
    }


@app.get("/", tags=["Root"])
async def root() -> dict:
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links.
    """
    return {
        "message": "Account Recovery Service",
        "docs": "/docs",
        "health": "/health",
    }
