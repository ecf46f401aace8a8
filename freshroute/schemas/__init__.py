"""Schemas package initialization."""

from freshroute.schemas.job import (
    OrderStatus,
    JobStatus,
    StopType,
    Coordinate,
    Address,
    Party,
    Farmer,
    Buyer,
    Order,
    Job,
    ManifestStop,
    Contact,
    TransportSpec,
    OrderInfo,
    JobSummary,
    VehicleInfo,
    JobBoard,
    JobDetail,
)
from freshroute.schemas.geofence import LocationVerificationResult, ReportedLocation
from freshroute.schemas.telemetry import (
    VehicleTelemetry,
    Alert,
    ChangeType,
    ChangeEvent,
    TelemetryState,
    TelemetrySnapshot,
    TelemetryView,
)

__all__ = [
    # Jobs and manifests
    "OrderStatus",
    "JobStatus",
    "StopType",
    "Coordinate",
    "Address",
    "Party",
    "Farmer",
    "Buyer",
    "Order",
    "Job",
    "ManifestStop",
    "Contact",
    "TransportSpec",
    "OrderInfo",
    "JobSummary",
    "VehicleInfo",
    "JobBoard",
    "JobDetail",
    # Geofence
    "LocationVerificationResult",
    "ReportedLocation",
    # Telemetry
    "VehicleTelemetry",
    "Alert",
    "ChangeType",
    "ChangeEvent",
    "TelemetryState",
    "TelemetrySnapshot",
    "TelemetryView",
]
