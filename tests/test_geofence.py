"""
Tests for pickup geofence verification.
"""

import re
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlparse

import pytest

from freshroute.core.errors import LocationUnavailableError
from freshroute.schemas.geofence import ReportedLocation
from freshroute.schemas.job import Coordinate
from freshroute.services.geofence import (
    PERMISSION_DENIED_MESSAGE,
    VERIFICATION_FAILED_MESSAGE,
    ReportedLocationProvider,
    build_directions_url,
    verify_location,
)
from tests.fixtures.test_data import KANDY, MATALE, meters_north


class FakeLocationProvider:
    """Scripted device location source."""

    def __init__(
        self,
        position: Optional[Tuple[float, float]] = None,
        granted: bool = True,
        fail: bool = False,
    ):
        self.position = position
        self.granted = granted
        self.fail = fail
        self.permission_requests = 0
        self.fixes = 0

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    async def current_position(self, high_accuracy: bool = True) -> Coordinate:
        self.fixes += 1
        if self.fail:
            raise LocationUnavailableError("GPS timeout")
        return Coordinate(latitude=self.position[0], longitude=self.position[1])


class TestVerifyLocation:
    """Tests for verify_location."""

    async def test_no_target_bypasses_check(self):
        """Without a target the check passes and the device is never asked."""
        provider = FakeLocationProvider(position=KANDY)
        result = await verify_location(None, None, provider=provider)

        assert result.success is True
        assert result.distance is None
        assert result.error is None
        assert provider.permission_requests == 0
        assert provider.fixes == 0

    async def test_permission_denied(self):
        provider = FakeLocationProvider(position=KANDY, granted=False)
        result = await verify_location(*KANDY, provider=provider)

        assert result.success is False
        assert result.distance is None
        assert result.error == PERMISSION_DENIED_MESSAGE
        assert provider.fixes == 0

    async def test_within_threshold(self):
        provider = FakeLocationProvider(position=meters_north(KANDY, 50))
        result = await verify_location(*KANDY, 100, provider=provider)

        assert result.success is True
        assert result.distance == pytest.approx(50, abs=0.5)
        assert result.error is None

    async def test_at_threshold_boundary_passes(self):
        """distance <= threshold succeeds."""
        provider = FakeLocationProvider(position=KANDY)
        result = await verify_location(*KANDY, 0, provider=provider)
        assert result.success is True

    async def test_mismatch_reports_distance_in_meters(self):
        """150 m off with a 100 m radius fails and says how far off."""
        provider = FakeLocationProvider(position=meters_north(KANDY, 150))
        result = await verify_location(*KANDY, 100, provider=provider)

        assert result.success is False
        assert result.distance == pytest.approx(150, abs=0.5)
        assert result.error == (
            "Location mismatch. You are 150m away from the pickup location. "
            "Please move to the correct location."
        )

    async def test_mismatch_reports_distance_in_km(self):
        provider = FakeLocationProvider(position=MATALE)
        result = await verify_location(*KANDY, provider=provider)

        assert result.success is False
        assert re.search(r"You are \d+\.\d{2} km away", result.error)

    async def test_custom_threshold(self):
        provider = FakeLocationProvider(position=meters_north(KANDY, 150))
        result = await verify_location(*KANDY, 200, provider=provider)
        assert result.success is True

    async def test_default_threshold_is_100m(self):
        near = await verify_location(*KANDY, provider=FakeLocationProvider(meters_north(KANDY, 90)))
        far = await verify_location(*KANDY, provider=FakeLocationProvider(meters_north(KANDY, 110)))
        assert near.success is True
        assert far.success is False

    async def test_position_failure(self):
        """A failed fix becomes a result, never an exception."""
        provider = FakeLocationProvider(fail=True)
        result = await verify_location(*KANDY, provider=provider)

        assert result.success is False
        assert result.distance is None
        assert result.error == VERIFICATION_FAILED_MESSAGE


class TestReportedLocationProvider:
    """Tests for the provider backed by a posted device fix."""

    async def test_reported_fix_is_used(self):
        provider = ReportedLocationProvider(ReportedLocation(latitude=KANDY[0], longitude=KANDY[1]))
        result = await verify_location(*KANDY, provider=provider)
        assert result.success is True
        assert result.distance == 0

    async def test_permission_not_granted(self):
        provider = ReportedLocationProvider(
            ReportedLocation(latitude=0, longitude=0, permission_granted=False)
        )
        result = await verify_location(*KANDY, provider=provider)
        assert result.error == PERMISSION_DENIED_MESSAGE


class TestDirectionsUrl:
    """Tests for the recovery navigation link."""

    def test_directions_to_point(self):
        url = build_directions_url(*MATALE)
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://www.google.com/maps/dir/"
        assert query["destination"] == [f"{MATALE[0]},{MATALE[1]}"]
        assert query["travelmode"] == ["driving"]
        assert query["api"] == ["1"]

    def test_no_target(self):
        assert build_directions_url(None, None) is None
