"""
Geofence verification for pickup confirmation.

Compares the device position against a target coordinate and reports
whether it lies within the pickup radius. The device side (permission
prompt, GPS fix) is behind the LocationProvider protocol.
"""

import logging
from typing import Optional, Protocol
from urllib.parse import urlencode

from freshroute.config import get_settings
from freshroute.core.errors import LocationUnavailableError
from freshroute.schemas.geofence import LocationVerificationResult, ReportedLocation
from freshroute.schemas.job import Coordinate
from freshroute.services.geodesy import distance_meters, format_distance

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = "Location permission denied. Please enable location access."
VERIFICATION_FAILED_MESSAGE = "Failed to verify location. Please try again."


class LocationProvider(Protocol):
    """Source of device position fixes."""

    async def request_permission(self) -> bool:
        """Ask for foreground location access. True when granted."""
        ...

    async def current_position(self, high_accuracy: bool = True) -> Coordinate:
        """Acquire a position fix. Raises LocationUnavailableError on failure."""
        ...


class ReportedLocationProvider:
    """
    Provider backed by a position the device already reported.

    Used by the gateway, where the fix was taken on the phone and
    posted with the verification request.
    """

    def __init__(self, reported: ReportedLocation) -> None:
        self.reported = reported

    async def request_permission(self) -> bool:
        return self.reported.permission_granted

    async def current_position(self, high_accuracy: bool = True) -> Coordinate:
        if not self.reported.permission_granted:
            raise LocationUnavailableError("Position was not shared by the device")
        return Coordinate(
            latitude=self.reported.latitude,
            longitude=self.reported.longitude,
        )


async def verify_location(
    target_lat: Optional[float],
    target_lng: Optional[float],
    threshold_meters: Optional[float] = None,
    *,
    provider: LocationProvider,
) -> LocationVerificationResult:
    """
    Verify that the device is within threshold_meters of the target.

    Args:
        target_lat: Target latitude, None when no geofence is configured
        target_lng: Target longitude, None when no geofence is configured
        threshold_meters: Allowed radius (defaults to settings, 100 m)
        provider: Device location source

    Returns:
        LocationVerificationResult; never raises for location problems
    """
    if target_lat is None or target_lng is None:
        return LocationVerificationResult(success=True, distance=None, error=None)

    if threshold_meters is None:
        threshold_meters = get_settings().geofence_threshold_m

    if not await provider.request_permission():
        return LocationVerificationResult(
            success=False,
            distance=None,
            error=PERMISSION_DENIED_MESSAGE,
        )

    try:
        current = await provider.current_position(high_accuracy=True)
    except LocationUnavailableError as e:
        logger.warning("Location verification failed: %s", e)
        return LocationVerificationResult(
            success=False,
            distance=None,
            error=VERIFICATION_FAILED_MESSAGE,
        )

    distance = distance_meters(target_lat, target_lng, current.latitude, current.longitude)

    if distance <= threshold_meters:
        return LocationVerificationResult(success=True, distance=distance, error=None)

    return LocationVerificationResult(
        success=False,
        distance=distance,
        error=(
            f"Location mismatch. You are {format_distance(distance)} away from the "
            "pickup location. Please move to the correct location."
        ),
    )


def build_directions_url(lat: Optional[float], lng: Optional[float]) -> Optional[str]:
    """Driving directions to a single point, offered when verification fails."""
    if lat is None or lng is None:
        return None
    settings = get_settings()
    query = urlencode({
        "api": 1,
        "destination": f"{lat},{lng}",
        "travelmode": settings.travel_mode,
    })
    return f"{settings.maps_directions_url}?{query}"
