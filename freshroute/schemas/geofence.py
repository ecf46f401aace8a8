"""
Pydantic schemas for geofence verification.
"""

from typing import Optional

from pydantic import BaseModel, Field


class LocationVerificationResult(BaseModel):
    """Outcome of comparing the device position against a target."""
    success: bool
    distance: Optional[float] = None
    error: Optional[str] = None


class ReportedLocation(BaseModel):
    """Device position reported to the gateway for a verification."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    permission_granted: bool = True
    accuracy_m: Optional[float] = Field(default=None, ge=0)
