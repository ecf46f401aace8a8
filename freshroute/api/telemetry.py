"""
Vehicle telemetry endpoints.

Ingests database-change webhooks into the realtime hub and exposes each
vehicle's telemetry and alert state, both as a snapshot and as a
Server-Sent Events stream.
"""

import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from freshroute.api.deps import get_backend_client, get_hub
from freshroute.client.api_client import BackendClient
from freshroute.core.events import RealtimeHub, topic_for_change
from freshroute.schemas.gateway import ChangeIngestResponse
from freshroute.schemas.telemetry import ChangeEvent, TelemetryView
from freshroute.services.telemetry import BackendSnapshotSource, TelemetryMonitor

router = APIRouter(tags=["Telemetry"])


@router.post(
    "/realtime/changes",
    response_model=ChangeIngestResponse,
    summary="Ingest a row change",
    description="Route a vehicles/alerts change to the matching vehicle channel.",
)
async def ingest_change(
    change: ChangeEvent,
    hub: RealtimeHub = Depends(get_hub),
) -> ChangeIngestResponse:
    delivered = await hub.route_change(change)
    return ChangeIngestResponse(topic=topic_for_change(change), delivered=delivered)


@router.get(
    "/vehicles/{vehicle_id}/telemetry",
    response_model=TelemetryView,
    summary="Current telemetry",
    description="Latest temperature/humidity reading and unread alert for a vehicle.",
)
async def get_vehicle_telemetry(
    vehicle_id: str,
    client: BackendClient = Depends(get_backend_client),
    hub: RealtimeHub = Depends(get_hub),
) -> TelemetryView:
    """
    One-shot read of a vehicle's telemetry state.
    A failed snapshot comes back with snapshot_error set.
    """
    async with TelemetryMonitor(vehicle_id, hub, BackendSnapshotSource(client)) as monitor:
        return TelemetryView.from_state(monitor.state)


@router.get("/vehicles/{vehicle_id}/telemetry/stream")
async def vehicle_telemetry_stream(
    vehicle_id: str,
    client: BackendClient = Depends(get_backend_client),
    hub: RealtimeHub = Depends(get_hub),
):
    """
    Server-Sent Events stream of a vehicle's telemetry state.

    The first event is the seeded state; each later event is the full
    state after a pushed telemetry update or alert. The vehicle's channels
    are held only while the client stays connected.

    Args:
        vehicle_id: Vehicle to follow

    Returns:
        SSE stream of telemetry states
    """

    async def event_generator():
        async with TelemetryMonitor(vehicle_id, hub, BackendSnapshotSource(client)) as monitor:
            async for state in monitor.watch():
                view = TelemetryView.from_state(state)
                # SSE format: "data: {...}\n\n"
                yield f"data: {json.dumps(view.model_dump(mode='json'))}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
