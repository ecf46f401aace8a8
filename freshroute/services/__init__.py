"""
Services package initialization.

Only the pure domain modules are re-exported here; modules that talk to
the backend (manifest, job_session, telemetry) are imported directly.
"""

from freshroute.services.geodesy import distance_meters, format_distance
from freshroute.services.job_state import (
    derive_job_status,
    mark_picked_up,
    mark_delivered,
    mark_job_completed,
    next_stop,
    TransitionOutcome,
    TransitionResult,
)
from freshroute.services.geofence import verify_location, build_directions_url

__all__ = [
    "distance_meters",
    "format_distance",
    "derive_job_status",
    "mark_picked_up",
    "mark_delivered",
    "mark_job_completed",
    "next_stop",
    "TransitionOutcome",
    "TransitionResult",
    "verify_location",
    "build_directions_url",
]
