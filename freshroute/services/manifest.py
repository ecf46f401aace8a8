"""
Route manifest consumer.

Loads a job's ordered stop list from the backend and derives what the
itinerary screen needs from it: total distance, a bounding viewport for
map framing and a turn-by-turn navigation link. Stops are trusted to
arrive ordered by sequence and are never re-sorted here.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlencode

import numpy as np

from freshroute.client.api_client import BackendClient
from freshroute.config import get_settings
from freshroute.core.errors import BackendError, MissingTokenError
from freshroute.schemas.job import Job, ManifestStop, OrderInfo, StopType
from freshroute.services.job_state import ordered_orders

logger = logging.getLogger(__name__)

EMPTY_MANIFEST_MESSAGE = "No stops have been planned for this job yet."


@dataclass
class Viewport:
    """Map region covering a set of stops."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float
    center_lat: float
    center_lng: float
    latitude_delta: float
    longitude_delta: float


@dataclass
class ManifestView:
    """Everything the itinerary screen renders; error set instead of raising."""
    job_id: str
    route_name: str = ""
    job_date: Optional[str] = None
    total_weight_kg: float = 0.0
    stops: List[ManifestStop] = field(default_factory=list)
    orders_data: Dict[str, OrderInfo] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.stops

    @property
    def total_distance_km(self) -> float:
        return total_distance_km(self.stops)

    @property
    def navigation_url(self) -> Optional[str]:
        return build_external_navigation_url(self.stops)

    @property
    def viewport(self) -> Optional[Viewport]:
        return fit_view_to_stops(self.stops)


def load_manifest(client: BackendClient, job_id: str) -> ManifestView:
    """
    Fetch a job's manifest. Never raises for fetch problems.

    Args:
        client: Backend client carrying the session token
        job_id: The job id

    Returns:
        ManifestView with stops, or with error set and no stops
    """
    try:
        detail = client.get_job(job_id)
    except MissingTokenError as e:
        return ManifestView(job_id=job_id, error=str(e))
    except BackendError as e:
        logger.warning("Failed to load manifest for job %s: %s", job_id, e)
        return ManifestView(job_id=job_id, error="Failed to load details")

    view = ManifestView(
        job_id=detail.id,
        route_name=detail.route_name,
        job_date=detail.job_date,
        total_weight_kg=detail.total_weight_kg,
        stops=list(detail.route_manifest),
        orders_data=dict(detail.orders_data),
    )
    if view.is_empty:
        view.error = EMPTY_MANIFEST_MESSAGE
    return view


def total_distance_km(stops: Sequence[ManifestStop]) -> float:
    """Sum of per-leg distances reported by the backend."""
    return float(sum(s.distance_from_last_km for s in stops))


def build_external_navigation_url(stops: Sequence[ManifestStop]) -> Optional[str]:
    """
    Turn-by-turn link: first stop as origin, last as destination and
    every stop in between as a waypoint, in manifest order.

    Returns None when there are fewer than two stops.
    """
    if len(stops) < 2:
        return None

    settings = get_settings()
    params = {
        "api": 1,
        "origin": f"{stops[0].lat},{stops[0].lng}",
        "destination": f"{stops[-1].lat},{stops[-1].lng}",
    }
    intermediate = stops[1:-1]
    if intermediate:
        params["waypoints"] = "|".join(f"{s.lat},{s.lng}" for s in intermediate)
    params["travelmode"] = settings.travel_mode

    return f"{settings.maps_directions_url}?{urlencode(params)}"


def fit_view_to_stops(stops: Sequence[ManifestStop]) -> Optional[Viewport]:
    """Bounding viewport over all stops, padded; None when there are none."""
    if len(stops) < 1:
        return None

    settings = get_settings()
    coords = np.array([(s.lat, s.lng) for s in stops], dtype=float)
    min_lat, min_lng = coords.min(axis=0)
    max_lat, max_lng = coords.max(axis=0)

    pad = settings.viewport_padding_factor
    return Viewport(
        min_lat=float(min_lat),
        max_lat=float(max_lat),
        min_lng=float(min_lng),
        max_lng=float(max_lng),
        center_lat=float((min_lat + max_lat) / 2),
        center_lng=float((min_lng + max_lng) / 2),
        latitude_delta=max(float(max_lat - min_lat) * pad, settings.viewport_min_delta),
        longitude_delta=max(float(max_lng - min_lng) * pad, settings.viewport_min_delta),
    )


def stops_from_job(job: Job) -> List[ManifestStop]:
    """
    Itinerary for a job known only by its orders: pickups in pickup_order,
    then the buyer drop. Parties without a coordinate are skipped.
    """
    stops: List[ManifestStop] = []
    for order in ordered_orders(job):
        location = order.farmer.location
        if location is None:
            continue
        stops.append(ManifestStop(
            sequence=len(stops) + 1,
            type=StopType.PICKUP,
            lat=location.latitude,
            lng=location.longitude,
            location=order.farmer.name,
            order_id=order.id,
        ))

    if job.buyer.location is not None:
        stops.append(ManifestStop(
            sequence=len(stops) + 1,
            type=StopType.DROP,
            lat=job.buyer.location.latitude,
            lng=job.buyer.location.longitude,
            location=job.buyer.name,
        ))
    return stops


def order_info(view: ManifestView, order_id: Optional[str]) -> Optional[OrderInfo]:
    """Cargo/contact details for a stop's order, None when not available."""
    if not order_id:
        return None
    return view.orders_data.get(order_id)
