"""
Transporter job endpoints.
Handles the job board, route manifests and the active job session:
geofence verification, pickups, deliveries and job completion.
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freshroute.api.deps import get_backend_client, get_session_maker, get_session_store
from freshroute.client.api_client import BackendClient
from freshroute.core.errors import (
    BackendError,
    JobSessionNotFoundError,
    MissingTokenError,
    OrderNotFoundError,
)
from freshroute.database import get_db
from freshroute.schemas.gateway import (
    JobBoardResponse,
    JobSessionResponse,
    ManifestResponse,
    StatusSyncResponse,
    TransitionResponse,
    VerificationResponse,
    ViewportResponse,
)
from freshroute.schemas.geofence import ReportedLocation
from freshroute.schemas.job import OrderInfo
from freshroute.services import sync_outbox
from freshroute.services.geofence import ReportedLocationProvider, build_directions_url
from freshroute.services.job_board import filter_jobs, load_job_board
from freshroute.services.job_session import JobSession, JobSessionStore, open_job_session
from freshroute.services.job_state import TransitionOutcome, TransitionResult
from freshroute.services.manifest import (
    build_external_navigation_url,
    load_manifest,
    order_info,
    stops_from_job,
)

router = APIRouter(tags=["Jobs"])


def _unauthorized(e: MissingTokenError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


def _session_or_404(store: JobSessionStore, job_id: str) -> JobSession:
    try:
        return store.get(job_id)
    except JobSessionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _session_response(session: JobSession) -> JobSessionResponse:
    job = session.job
    return JobSessionResponse(
        job=job,
        next_stop=session.next_stop,
        navigation_url=build_external_navigation_url(stops_from_job(job)),
        pickup_verified={o.id: session.pickup_verified(o.id) for o in job.orders},
    )


def _transition_response(
    result: TransitionResult,
    session: JobSession,
    response: Response,
) -> TransitionResponse:
    if result.outcome == TransitionOutcome.REJECTED:
        response.status_code = status.HTTP_409_CONFLICT
    return TransitionResponse(
        outcome=result.outcome.value,
        title=result.title,
        message=result.message,
        order_id=result.order_id,
        job=session.job,
        next_stop=session.next_stop,
    )


@router.get(
    "/jobs",
    response_model=JobBoardResponse,
    summary="List assigned jobs",
    description="Fetch the transporter's jobs, optionally filtered by route name or status.",
)
async def list_jobs(
    search: Optional[str] = Query(default=None, description="Route name or status text"),
    client: BackendClient = Depends(get_backend_client),
) -> JobBoardResponse:
    """Get the job board."""
    try:
        board, error = await asyncio.to_thread(load_job_board, client)
    except MissingTokenError as e:
        raise _unauthorized(e)

    jobs = filter_jobs(board.jobs, search)
    return JobBoardResponse(jobs=jobs, vehicle=board.vehicle, count=len(jobs), error=error)


@router.get(
    "/jobs/{job_id}/manifest",
    response_model=ManifestResponse,
    summary="Get route manifest",
    description="Ordered stops with total distance, map viewport and navigation link.",
)
async def get_manifest(
    job_id: str,
    client: BackendClient = Depends(get_backend_client),
) -> ManifestResponse:
    """Get a job's manifest view."""
    view = await asyncio.to_thread(load_manifest, client, job_id)
    viewport = view.viewport
    return ManifestResponse(
        job_id=view.job_id,
        route_name=view.route_name,
        job_date=view.job_date,
        total_weight_kg=view.total_weight_kg,
        stops=view.stops,
        orders_data=view.orders_data,
        total_distance_km=view.total_distance_km,
        navigation_url=view.navigation_url,
        viewport=ViewportResponse(**vars(viewport)) if viewport else None,
        error=view.error,
    )


@router.get(
    "/jobs/{job_id}/orders/{order_id}/info",
    response_model=OrderInfo,
    summary="Get order details",
)
async def get_order_info(
    job_id: str,
    order_id: str,
    client: BackendClient = Depends(get_backend_client),
) -> OrderInfo:
    """Cargo, contacts and transport requirements for one order."""
    view = await asyncio.to_thread(load_manifest, client, job_id)
    info = order_info(view, order_id)
    if info is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=view.error if view.error and view.is_empty else "Order details not available.",
        )
    return info


@router.post(
    "/jobs/{job_id}/session",
    response_model=JobSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open job session",
    description="Fetch the job and make it the active job for status updates.",
)
async def open_session(
    job_id: str,
    client: BackendClient = Depends(get_backend_client),
    store: JobSessionStore = Depends(get_session_store),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> JobSessionResponse:
    """Open (or reopen with fresh data) the session for a job."""
    try:
        session = await open_job_session(client, job_id, session_maker)
    except MissingTokenError as e:
        raise _unauthorized(e)
    except BackendError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    store.put(session)
    return _session_response(session)


@router.get(
    "/jobs/{job_id}/session",
    response_model=JobSessionResponse,
    summary="Get job session",
)
async def get_session(
    job_id: str,
    store: JobSessionStore = Depends(get_session_store),
) -> JobSessionResponse:
    return _session_response(_session_or_404(store, job_id))


@router.delete(
    "/jobs/{job_id}/session",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close job session",
)
async def close_session(
    job_id: str,
    store: JobSessionStore = Depends(get_session_store),
) -> Response:
    try:
        store.close(job_id)
    except JobSessionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/jobs/{job_id}/orders/{order_id}/verify-location",
    response_model=VerificationResponse,
    summary="Verify pickup location",
    description="Check the device position against the farm before pickup is allowed.",
)
async def verify_pickup_location(
    job_id: str,
    order_id: str,
    request: ReportedLocation,
    store: JobSessionStore = Depends(get_session_store),
) -> VerificationResponse:
    """Run the pickup geofence check for an order."""
    session = _session_or_404(store, job_id)
    try:
        result = await session.verify_pickup(order_id, ReportedLocationProvider(request))
        order = session.job.get_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    target = order.farmer.location
    return VerificationResponse(
        order_id=order_id,
        result=result,
        pickup_enabled=session.pickup_verified(order_id),
        directions_url=None if result.success or target is None
        else build_directions_url(target.latitude, target.longitude),
    )


@router.post(
    "/jobs/{job_id}/orders/{order_id}/pickup",
    response_model=TransitionResponse,
    summary="Confirm pickup",
)
async def confirm_pickup(
    job_id: str,
    order_id: str,
    response: Response,
    client: BackendClient = Depends(get_backend_client),
    store: JobSessionStore = Depends(get_session_store),
) -> TransitionResponse:
    session = _session_or_404(store, job_id)
    try:
        result = await session.mark_picked_up(order_id, client)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _transition_response(result, session, response)


@router.post(
    "/jobs/{job_id}/orders/{order_id}/deliver",
    response_model=TransitionResponse,
    summary="Confirm delivery",
)
async def confirm_delivery(
    job_id: str,
    order_id: str,
    response: Response,
    client: BackendClient = Depends(get_backend_client),
    store: JobSessionStore = Depends(get_session_store),
) -> TransitionResponse:
    session = _session_or_404(store, job_id)
    try:
        result = await session.mark_delivered(order_id, client)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _transition_response(result, session, response)


@router.post(
    "/jobs/{job_id}/complete",
    response_model=TransitionResponse,
    summary="Mark job completed",
    description="Allowed only once every order has been delivered.",
)
async def complete_job(
    job_id: str,
    response: Response,
    client: BackendClient = Depends(get_backend_client),
    store: JobSessionStore = Depends(get_session_store),
) -> TransitionResponse:
    session = _session_or_404(store, job_id)
    result = await session.mark_completed(client)
    return _transition_response(result, session, response)


@router.get(
    "/jobs/{job_id}/sync",
    response_model=List[StatusSyncResponse],
    summary="Status sync history",
    description="Outbox of status changes sent to the backend for this job.",
)
async def get_sync_history(
    job_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> List[StatusSyncResponse]:
    entries = await sync_outbox.list_entries(db, job_id=job_id, limit=limit)
    return [StatusSyncResponse.model_validate(e) for e in entries]
