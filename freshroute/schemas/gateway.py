"""
Pydantic schemas for the transporter gateway API.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from freshroute.models.status_sync import SyncState, SyncTarget
from freshroute.schemas.geofence import LocationVerificationResult
from freshroute.schemas.job import Job, JobSummary, ManifestStop, Order, OrderInfo, VehicleInfo


class JobBoardResponse(BaseModel):
    """Response for GET /api/v1/jobs."""
    jobs: List[JobSummary] = []
    vehicle: Optional[VehicleInfo] = None
    count: int = 0
    error: Optional[str] = None


class ViewportResponse(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float
    center_lat: float
    center_lng: float
    latitude_delta: float
    longitude_delta: float


class ManifestResponse(BaseModel):
    """Response for GET /api/v1/jobs/{id}/manifest."""
    job_id: str
    route_name: str = ""
    job_date: Optional[str] = None
    total_weight_kg: float = 0.0
    stops: List[ManifestStop] = []
    orders_data: Dict[str, OrderInfo] = {}
    total_distance_km: float = 0.0
    navigation_url: Optional[str] = None
    viewport: Optional[ViewportResponse] = None
    error: Optional[str] = None


class JobSessionResponse(BaseModel):
    """Active job with its derived state."""
    job: Job
    next_stop: Optional[Order] = None
    navigation_url: Optional[str] = None
    pickup_verified: Dict[str, bool] = {}


class TransitionResponse(BaseModel):
    """Outcome of a status transition and the notice to show."""
    outcome: str
    title: str
    message: str
    order_id: Optional[str] = None
    job: Job
    next_stop: Optional[Order] = None


class VerificationResponse(BaseModel):
    """Geofence verification outcome plus the recovery navigation link."""
    order_id: str
    result: LocationVerificationResult
    pickup_enabled: bool
    directions_url: Optional[str] = None


class StatusSyncResponse(BaseModel):
    id: int
    job_id: str
    order_id: Optional[str] = None
    target: SyncTarget
    from_status: str
    to_status: str
    state: SyncState
    error: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ChangeIngestResponse(BaseModel):
    """Response for POST /api/v1/realtime/changes."""
    topic: Optional[str] = None
    delivered: int = 0
