"""
Normalization of backend payloads into the strict internal schemas.

The backend's JSON is loosely shaped: lists may be wrapped in a `data`
envelope, numbers may arrive as strings, and field names differ between
endpoints. This module is the only place that reads raw payloads; the
state machine and views only ever see the models in freshroute.schemas.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from freshroute.core.errors import BackendError
from freshroute.schemas.job import (
    Address,
    Contact,
    Coordinate,
    Job,
    JobBoard,
    JobDetail,
    JobSummary,
    ManifestStop,
    Order,
    OrderInfo,
    OrderStatus,
    Party,
    StopType,
    TransportSpec,
    VehicleInfo,
)
from freshroute.schemas.telemetry import Alert, VehicleTelemetry
from freshroute.services.job_state import derive_job_status


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Value of the first key present and not None."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _unwrap(data: Any, key: str) -> Any:
    """Find `key` at the top level or inside a `data` envelope."""
    if not isinstance(data, dict):
        return None
    if data.get(key) is not None:
        return data[key]
    inner = data.get("data")
    if isinstance(inner, dict):
        return inner.get(key)
    return None


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_vehicle(data: Any) -> Optional[VehicleInfo]:
    if not isinstance(data, dict):
        return None
    return VehicleInfo(
        id=_first(data, "id", "vehicle_id"),
        plate=_first(data, "plate", "vehicle_plate", "license_plate", "plate_number"),
        type=_first(data, "type", "vehicle_type"),
        driver_name=_first(data, "driver_name", "driver"),
    )


def normalize_job_summary(data: Dict[str, Any]) -> JobSummary:
    return JobSummary(
        id=str(_first(data, "id", "job_id")),
        route_name=_first(data, "route_name", "name", default=""),
        job_date=_first(data, "job_date", "date"),
        total_weight_kg=_as_float(_first(data, "total_weight_kg", "total_weight")),
        status=str(_first(data, "status", default="pending")),
        vehicle_type_assigned=_first(data, "vehicle_type_assigned", "vehicle_type"),
    )


def normalize_job_board(data: Any) -> JobBoard:
    """Map the GET /jobs payload to a JobBoard."""
    raw_jobs = data if isinstance(data, list) else _unwrap(data, "jobs")
    jobs = [
        normalize_job_summary(j)
        for j in (raw_jobs or [])
        if isinstance(j, dict) and _first(j, "id", "job_id") is not None
    ]
    vehicle = normalize_vehicle(_unwrap(data, "vehicle"))
    return JobBoard(jobs=jobs, vehicle=vehicle)


def normalize_manifest_stop(data: Dict[str, Any]) -> ManifestStop:
    stop_type = str(_first(data, "type", "stop_type", default="PICKUP")).upper()
    order_id = _first(data, "order_id", "orderId")
    return ManifestStop(
        sequence=int(_first(data, "sequence", "seq", default=0)),
        type=StopType(stop_type),
        lat=_as_float(_first(data, "lat", "latitude")),
        lng=_as_float(_first(data, "lng", "lon", "longitude")),
        location=_first(data, "location", "address", "name"),
        distance_from_last_km=max(0.0, _as_float(data.get("distance_from_last_km"))),
        order_id=str(order_id) if order_id is not None else None,
    )


def _normalize_contact(data: Any) -> Optional[Contact]:
    if not isinstance(data, dict) or not data.get("name"):
        return None
    return Contact(name=data["name"], phone=_first(data, "phone", "phone_number"))


def _normalize_specs(data: Any) -> Optional[TransportSpec]:
    if not isinstance(data, dict):
        return None
    return TransportSpec(
        optimal_temp_c=data.get("optimal_temp_c"),
        max_safe_temp_c=data.get("max_safe_temp_c"),
        force_refrigeration=bool(data.get("force_refrigeration", False)),
    )


def _normalize_order_status(value: Any) -> OrderStatus:
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        return OrderStatus.PENDING


def normalize_order_info(order_id: str, data: Dict[str, Any]) -> OrderInfo:
    return OrderInfo(
        id=str(_first(data, "id", default=order_id)),
        fruit_type=_first(data, "fruit_type", "fruitType", default=""),
        fruit_variant=_first(data, "fruit_variant", "variant", default=""),
        quantity=_as_float(_first(data, "quantity", "quantity_kg", "quantityKg")),
        status=_normalize_order_status(data.get("status", "pending")),
        farmer=_normalize_contact(data.get("farmer")),
        buyer=_normalize_contact(data.get("buyer")),
        specs=_normalize_specs(_first(data, "specs", "transport_specs")),
    )


def normalize_job_detail(data: Any, job_id: str) -> JobDetail:
    """Map the GET /jobs/{id} payload to a JobDetail."""
    if not isinstance(data, dict):
        raise BackendError(f"Unexpected job detail payload for job {job_id}")
    job = data.get("job") if isinstance(data.get("job"), dict) else data

    raw_manifest = _unwrap(data, "route_manifest") or job.get("route_manifest") or []
    raw_orders = _unwrap(data, "orders_data") or job.get("orders_data") or {}

    try:
        manifest = [normalize_manifest_stop(s) for s in raw_manifest if isinstance(s, dict)]
        orders_data = {
            str(key): normalize_order_info(str(key), value)
            for key, value in raw_orders.items()
            if isinstance(value, dict)
        }
    except (ValidationError, ValueError, TypeError) as e:
        raise BackendError(f"Malformed manifest for job {job_id}: {e}") from e

    return JobDetail(
        id=str(_first(job, "id", "job_id", default=job_id)),
        route_name=_first(job, "route_name", "name", default=""),
        job_date=_first(job, "job_date", "date"),
        total_weight_kg=_as_float(_first(job, "total_weight_kg", "total_weight")),
        status=str(_first(job, "status", default="pending")),
        vehicle=normalize_vehicle(_first(data, "vehicle", default=job.get("vehicle"))),
        route_manifest=manifest,
        orders_data=orders_data,
    )


def job_from_detail(detail: JobDetail) -> Job:
    """
    Build the local Job state from a job detail.

    Pickup stops define pickup_order (first pickup of an order wins) and
    the farm coordinate; the last DROP stop is the buyer location.
    """
    drops = [s for s in detail.route_manifest if s.type == StopType.DROP]
    drop = drops[-1] if drops else None

    first_info = next(iter(detail.orders_data.values()), None)
    buyer_contact = first_info.buyer if first_info else None
    buyer = Party(
        id=f"{detail.id}-buyer",
        name=buyer_contact.name if buyer_contact else (drop.location if drop and drop.location else "Buyer"),
        phone=buyer_contact.phone if buyer_contact else None,
        address=Address(
            line1=drop.location if drop and drop.location else "",
            city="",
            district="",
        ),
        location=drop.coordinate if drop else None,
    )

    orders: List[Order] = []
    seen = set()
    for stop in detail.route_manifest:
        if stop.type != StopType.PICKUP or not stop.order_id or stop.order_id in seen:
            continue
        seen.add(stop.order_id)
        info = detail.orders_data.get(stop.order_id) or OrderInfo(id=stop.order_id)
        if info.quantity <= 0:
            raise BackendError(f"Order {stop.order_id} has no cargo quantity")

        farmer = Party(
            id=f"{stop.order_id}-farmer",
            name=info.farmer.name if info.farmer else (stop.location or "Farmer"),
            phone=info.farmer.phone if info.farmer else None,
            address=Address(line1=stop.location or "", city="", district=""),
            location=Coordinate(latitude=stop.lat, longitude=stop.lng),
        )
        orders.append(Order(
            id=stop.order_id,
            pickup_order=len(orders) + 1,
            fruit_type=info.fruit_type or "Unknown",
            quantity_kg=info.quantity,
            status=info.status,
            farmer=farmer,
            buyer=buyer,
        ))

    vehicle = detail.vehicle or VehicleInfo()
    return Job(
        id=detail.id,
        date=detail.job_date or "",
        buyer=buyer,
        vehicle_plate=vehicle.plate or "",
        driver_name=vehicle.driver_name or "",
        orders=orders,
        status=derive_job_status(orders),
    )


def normalize_telemetry(data: Any) -> Optional[VehicleTelemetry]:
    """Map a vehicle row to a reading; missing values read as 0."""
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    if not isinstance(data, dict):
        return None
    temp = _first(data, "current_temp", "temp")
    humidity = _first(data, "current_humidity", "humidity")
    if temp is None and humidity is None:
        return None
    return VehicleTelemetry(temp=_as_float(temp), humidity=_as_float(humidity))


def normalize_alert(data: Any, vehicle_id: Optional[str] = None) -> Optional[Alert]:
    """Map an alert row to an Alert."""
    if not isinstance(data, dict) or not data.get("message"):
        return None
    return Alert(
        message=data["message"],
        type=_first(data, "alert_type", "type", default="GENERAL"),
        vehicle_id=_first(data, "vehicle_id", default=vehicle_id),
        is_read=bool(data.get("is_read", False)),
        created_at=data.get("created_at"),
    )


def normalize_alert_list(data: Any) -> List[Dict[str, Any]]:
    """Alert rows from a bare list or an `alerts`/`data` envelope; anything else is empty."""
    if isinstance(data, dict):
        data = _first(data, "alerts", "data")
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]
