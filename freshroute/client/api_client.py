"""
Backend API Client for the marketplace transporter endpoints.

Provides HTTP-based communication with the marketplace backend. Every
request carries the session's bearer token; without a token the request
is never sent.
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

from freshroute.config import get_settings
from freshroute.core.errors import BackendError, MissingTokenError
from freshroute.schemas.job import JobBoard, JobDetail, OrderStatus
from freshroute.schemas.telemetry import TelemetrySnapshot
from freshroute.services.normalization import (
    normalize_alert,
    normalize_alert_list,
    normalize_job_board,
    normalize_job_detail,
    normalize_telemetry,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


class BackendClient:
    """Client for the marketplace backend's transporter API."""

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the backend client.

        Args:
            token_provider: Callable returning the current session token or None
            base_url: Base URL of the backend (defaults to settings)
            session: Optional requests session, shared connection pool
        """
        settings = get_settings()
        self.base_url = (base_url or settings.backend_url).rstrip('/')
        self.api_prefix = settings.transporter_api_prefix
        self.timeout = settings.request_timeout_seconds
        self.token_provider = token_provider
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider()
        if not token:
            raise MissingTokenError()
        return {"Authorization": f"Bearer {token}"}

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
    ) -> Any:
        """Send a request to the backend and decode the JSON body."""
        headers = self._headers()
        url = f"{self.base_url}{self.api_prefix}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=data,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            logger.warning("API request %s %s failed: %s", method, endpoint, e)
            raise BackendError(f"Backend returned HTTP {status_code}", status_code=status_code) from e
        except requests.exceptions.RequestException as e:
            logger.warning("API request %s %s failed: %s", method, endpoint, e)
            raise BackendError(f"Cannot reach backend: {e}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise BackendError("Backend returned an invalid JSON body") from e

    def get_jobs(self) -> JobBoard:
        """
        Get the transporter's assigned jobs.

        Returns:
            JobBoard with job summaries and the assigned vehicle
        """
        data = self._request("GET", "/jobs")
        return normalize_job_board(data)

    def get_job(self, job_id: str) -> JobDetail:
        """
        Get a job's detail: route manifest and per-order lookup.

        Args:
            job_id: The job id

        Returns:
            JobDetail
        """
        data = self._request("GET", f"/jobs/{job_id}")
        return normalize_job_detail(data, job_id)

    def update_order_status(self, job_id: str, order_id: str, status: OrderStatus) -> Dict:
        """Confirm an order status change on the server."""
        return self._request(
            "PATCH",
            f"/jobs/{job_id}/orders/{order_id}",
            data={"status": status.value},
        )

    def complete_job(self, job_id: str) -> Dict:
        """Confirm job completion on the server."""
        return self._request("PATCH", f"/jobs/{job_id}", data={"status": "completed"})

    def get_telemetry_snapshot(self, vehicle_id: str) -> TelemetrySnapshot:
        """
        Get the current reading and the most recent unread alert of a vehicle.

        Args:
            vehicle_id: The vehicle id

        Returns:
            TelemetrySnapshot, with None fields where nothing is known
        """
        vehicle = self._request("GET", f"/vehicles/{vehicle_id}/telemetry")
        alerts = normalize_alert_list(self._request(
            "GET",
            f"/vehicles/{vehicle_id}/alerts",
            params={"is_read": "false", "order": "created_at.desc", "limit": 1},
        ))

        latest = normalize_alert(alerts[0], vehicle_id) if alerts else None
        return TelemetrySnapshot(
            telemetry=normalize_telemetry(vehicle),
            latest_unread_alert=latest,
        )
