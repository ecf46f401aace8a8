"""
Pydantic schemas for transporter jobs, orders and route manifests.
These are the strict internal types; raw backend payloads are mapped onto
them in services/normalization.py before anything else sees them.
"""

import enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OrderStatus(str, enum.Enum):
    """Lifecycle of a single consignment. Forward-only."""
    PENDING = "pending"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"


class JobStatus(str, enum.Enum):
    """Job status, always derived from the order statuses."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StopType(str, enum.Enum):
    """Kind of manifest stop."""
    PICKUP = "PICKUP"
    DROP = "DROP"


class Coordinate(BaseModel):
    """A WGS84 position."""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class Address(BaseModel):
    """Postal address, for display only."""
    line1: str
    city: str
    district: str


class Party(BaseModel):
    """A farmer or buyer referenced by orders."""
    id: str
    name: str
    address: Address
    location: Optional[Coordinate] = None
    phone: Optional[str] = None


Farmer = Party
Buyer = Party


class Order(BaseModel):
    """One farmer-to-buyer consignment within a job."""
    id: str
    pickup_order: int = Field(..., ge=1)
    fruit_type: str
    quantity_kg: float = Field(..., gt=0)
    status: OrderStatus = OrderStatus.PENDING
    farmer: Party
    buyer: Party


class Job(BaseModel):
    """A transporter assignment: ordered pickups and one final drop."""
    id: str
    date: str
    buyer: Party
    vehicle_plate: str = ""
    driver_name: str = ""
    orders: List[Order] = []
    status: JobStatus = JobStatus.PENDING

    @model_validator(mode="after")
    def check_pickup_sequence(self) -> "Job":
        sequence = sorted(o.pickup_order for o in self.orders)
        if sequence != list(range(1, len(self.orders) + 1)):
            raise ValueError(
                f"pickup_order values must be a contiguous 1-based sequence, got {sequence}"
            )
        return self

    def get_order(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None


class ManifestStop(BaseModel):
    """A stop in the backend-produced route manifest."""
    sequence: int
    type: StopType
    lat: float
    lng: float
    location: Optional[str] = None
    distance_from_last_km: float = Field(default=0.0, ge=0)
    order_id: Optional[str] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.lat, longitude=self.lng)


class Contact(BaseModel):
    """Name and phone shown on the order details sheet."""
    name: str
    phone: Optional[str] = None


class TransportSpec(BaseModel):
    """Cold-chain requirements for a consignment."""
    optimal_temp_c: Optional[float] = None
    max_safe_temp_c: Optional[float] = None
    force_refrigeration: bool = False


class OrderInfo(BaseModel):
    """Per-order cargo, contact and transport details from the job detail."""
    id: str
    fruit_type: str = ""
    fruit_variant: str = ""
    quantity: float = 0.0
    status: OrderStatus = OrderStatus.PENDING
    farmer: Optional[Contact] = None
    buyer: Optional[Contact] = None
    specs: Optional[TransportSpec] = None


class JobSummary(BaseModel):
    """Row of the transporter's job board."""
    id: str
    route_name: str = ""
    job_date: Optional[str] = None
    total_weight_kg: float = 0.0
    status: str = JobStatus.PENDING.value
    vehicle_type_assigned: Optional[str] = None


class VehicleInfo(BaseModel):
    """Vehicle assigned to the transporter, as listed with the job board."""
    id: Optional[str] = None
    plate: Optional[str] = None
    type: Optional[str] = None
    driver_name: Optional[str] = None


class JobBoard(BaseModel):
    """Job list plus the transporter's vehicle."""
    jobs: List[JobSummary] = []
    vehicle: Optional[VehicleInfo] = None


class JobDetail(BaseModel):
    """Job detail with its manifest and order lookup map."""
    id: str
    route_name: str = ""
    job_date: Optional[str] = None
    total_weight_kg: float = 0.0
    status: str = JobStatus.PENDING.value
    vehicle: Optional[VehicleInfo] = None
    route_manifest: List[ManifestStop] = []
    orders_data: Dict[str, OrderInfo] = {}
