"""API routers package initialization."""

from freshroute.api.jobs import router as jobs_router
from freshroute.api.telemetry import router as telemetry_router

__all__ = [
    "jobs_router",
    "telemetry_router",
]
