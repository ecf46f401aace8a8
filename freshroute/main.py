"""
FreshRoute Transporter Gateway - FastAPI Application
Main entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from freshroute.config import get_settings
from freshroute.api import jobs_router, telemetry_router
from freshroute.database import close_db, init_db
from freshroute.services.job_session import JobSessionStore


settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting %s v%s", settings.app_title, settings.app_version)

    await init_db()
    logger.info("Status-sync outbox initialized")

    app.state.job_sessions = JobSessionStore()

    yield
    # Shutdown
    logger.info("Shutting down...")
    app.state.job_sessions.close_all()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.app_title,
    version=settings.app_version,
    description="""
    ## FreshRoute Transporter Gateway

    Transporter-side service for the fresh-produce marketplace.

    ### Features
    - **Job Board**: Assigned jobs with route name/status search
    - **Route Manifest**: Ordered stops, total distance, map viewport and navigation link
    - **Geofenced Pickups**: Pickup is enabled only within range of the farm
    - **Status Sync**: Optimistic pickup/delivery updates confirmed with the backend
    - **Live Telemetry**: Temperature/humidity and alerts over SSE

    ### Main Endpoints
    - `GET /api/v1/jobs` - Job board
    - `GET /api/v1/jobs/{id}/manifest` - Route manifest
    - `POST /api/v1/jobs/{id}/session` - Open the active job
    - `POST /api/v1/jobs/{id}/orders/{order_id}/verify-location` - Geofence check
    - `POST /api/v1/jobs/{id}/orders/{order_id}/pickup` - Confirm pickup
    - `GET /api/v1/vehicles/{id}/telemetry/stream` - SSE telemetry stream
    """,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(jobs_router, prefix=settings.api_prefix)
app.include_router(telemetry_router, prefix=settings.api_prefix)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": settings.app_title,
        "version": settings.app_version,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "backend_url": settings.backend_url,
        "open_sessions": len(app.state.job_sessions) if hasattr(app.state, "job_sessions") else 0,
    }
