"""
Exception types raised inside the transporter core.

Geofence mismatches, permission denials and invalid status transitions are
reported as results, not exceptions. These classes cover the failures that
callers must translate into an error state.
"""

from typing import Optional


class FreshRouteError(Exception):
    """Base class for all transporter core errors."""


class MissingTokenError(FreshRouteError):
    """No session token is available, so the request was never sent."""

    def __init__(self) -> None:
        super().__init__("Not signed in: no session token available")


class BackendError(FreshRouteError):
    """The marketplace backend could not be reached or returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OrderNotFoundError(FreshRouteError):
    """The order id does not belong to the job."""

    def __init__(self, job_id: str, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found in job {job_id}")
        self.job_id = job_id
        self.order_id = order_id


class JobSessionNotFoundError(FreshRouteError):
    """No active session is open for the job."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"No active session for job {job_id}")
        self.job_id = job_id


class LocationUnavailableError(FreshRouteError):
    """The platform could not produce a position fix."""
