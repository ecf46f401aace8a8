"""
Pydantic schemas for vehicle telemetry, alerts and realtime change events.
"""

import enum
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class VehicleTelemetry(BaseModel):
    """Current environmental reading of a vehicle. Last write wins."""
    temp: float
    humidity: float


class Alert(BaseModel):
    """A server-originated alert for a vehicle."""
    message: str
    type: str = "GENERAL"
    vehicle_id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None


class ChangeType(str, enum.Enum):
    """Database change kinds delivered by the push channel."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    A row change pushed by the realtime backend.

    Mirrors the database-change webhook shape: the table that changed,
    the change type and the new row.
    """
    type: ChangeType
    table: str
    schema_name: str = Field(default="public", alias="schema")
    record: Dict[str, Any] = {}
    old_record: Optional[Dict[str, Any]] = None

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "type": "UPDATE",
                "table": "vehicles",
                "schema": "public",
                "record": {"id": "VEH-01", "current_temp": 21.5, "current_humidity": 88.2},
            }
        },
    }


class TelemetryState(BaseModel):
    """What the ambient telemetry display shows for one vehicle."""
    vehicle_id: str
    telemetry: Optional[VehicleTelemetry] = None
    active_alert: Optional[Alert] = None
    auto_surface: bool = False
    snapshot_error: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.telemetry is not None

    @property
    def highlighted(self) -> bool:
        return self.active_alert is not None


class TelemetrySnapshot(BaseModel):
    """Initial seed loaded when a monitor starts."""
    telemetry: Optional[VehicleTelemetry] = None
    latest_unread_alert: Optional[Alert] = None


class TelemetryView(BaseModel):
    """Serialized TelemetryState for the gateway API and SSE stream."""
    vehicle_id: str
    has_data: bool
    telemetry: Optional[VehicleTelemetry] = None
    active_alert: Optional[Alert] = None
    auto_surface: bool = False
    highlighted: bool = False
    snapshot_error: Optional[str] = None

    @classmethod
    def from_state(cls, state: TelemetryState) -> "TelemetryView":
        return cls(
            vehicle_id=state.vehicle_id,
            has_data=state.has_data,
            telemetry=state.telemetry,
            active_alert=state.active_alert,
            auto_surface=state.auto_surface,
            highlighted=state.highlighted,
            snapshot_error=state.snapshot_error,
        )
