"""
Active job session.

Owns the single mutable copy of a job while it is being worked. Local
transitions are applied optimistically, recorded in the status-sync
outbox, confirmed with the backend and undone when the backend refuses
or cannot be reached. Once a session is closed, results of calls that
were still in flight are discarded instead of being applied.
"""

import asyncio
import logging
from functools import partial
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freshroute.client.api_client import BackendClient
from freshroute.core.errors import BackendError, JobSessionNotFoundError, MissingTokenError
from freshroute.database import async_session_maker
from freshroute.models import SyncTarget
from freshroute.schemas.geofence import LocationVerificationResult
from freshroute.schemas.job import Job, Order
from freshroute.services import job_state, sync_outbox
from freshroute.services.geofence import LocationProvider, verify_location
from freshroute.services.job_state import TransitionOutcome, TransitionResult
from freshroute.services.normalization import job_from_detail

logger = logging.getLogger(__name__)


class JobSession:
    """A job being worked by the transporter, plus its pickup gates."""

    def __init__(
        self,
        job: Job,
        client: BackendClient,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
    ) -> None:
        self._job = job
        self.client = client
        self.session_maker = session_maker
        self.verifications: Dict[str, LocationVerificationResult] = {}
        self.closed = False
        self._lock = asyncio.Lock()

    @property
    def job(self) -> Job:
        return self._job

    @property
    def next_stop(self) -> Optional[Order]:
        return job_state.next_stop(self._job)

    def close(self) -> None:
        """Stop accepting results; anything still in flight is discarded."""
        self.closed = True

    def pickup_verified(self, order_id: str) -> bool:
        """Whether the capture/pickup action is enabled for an order."""
        order = self._job.get_order(order_id)
        if order is None or not job_state.requires_geofence(order):
            return True
        result = self.verifications.get(order_id)
        return bool(result and result.success)

    async def verify_pickup(
        self,
        order_id: str,
        provider: LocationProvider,
        threshold_meters: Optional[float] = None,
    ) -> LocationVerificationResult:
        """
        Run geofence verification against the order's farm location and
        remember the result as that order's pickup gate.
        """
        order = job_state.get_order(self._job, order_id)
        target = order.farmer.location
        result = await verify_location(
            target.latitude if target else None,
            target.longitude if target else None,
            threshold_meters,
            provider=provider,
        )
        if self.closed:
            logger.info("Discarding location result for order %s: session closed", order_id)
            return result
        self.verifications[order_id] = result
        return result

    def _bind(self, client: Optional[BackendClient]) -> None:
        """Use the caller's client for this and later confirmations."""
        if client is not None:
            self.client = client

    async def mark_picked_up(
        self, order_id: str, client: Optional[BackendClient] = None
    ) -> TransitionResult:
        async with self._lock:
            self._bind(client)
            result = job_state.mark_picked_up(
                self._job, order_id, self.verifications.get(order_id)
            )
            return await self._commit(result, SyncTarget.ORDER)

    async def mark_delivered(
        self, order_id: str, client: Optional[BackendClient] = None
    ) -> TransitionResult:
        async with self._lock:
            self._bind(client)
            result = job_state.mark_delivered(self._job, order_id)
            return await self._commit(result, SyncTarget.ORDER)

    async def mark_completed(self, client: Optional[BackendClient] = None) -> TransitionResult:
        async with self._lock:
            self._bind(client)
            result = job_state.mark_job_completed(self._job)
            return await self._commit(result, SyncTarget.JOB)

    async def _commit(self, result: TransitionResult, target: SyncTarget) -> TransitionResult:
        """Apply an accepted transition locally, then confirm it with the backend."""
        if not result.applied:
            return result

        previous = self._job
        client = self.client

        if target == SyncTarget.ORDER:
            new_status = job_state.get_order(result.job, result.order_id).status
            before = job_state.get_order(previous, result.order_id).status.value
            after = new_status.value
            call: Callable[[], Dict] = partial(
                client.update_order_status, previous.id, result.order_id, new_status
            )
        else:
            before = previous.status.value
            after = result.job.status.value
            call = partial(client.complete_job, previous.id)

        async with self.session_maker() as db:
            entry = await sync_outbox.record_pending(
                db, previous.id, target, before, after, order_id=result.order_id
            )
            await db.commit()

            # Only a recorded change is applied locally.
            self._job = result.job
            try:
                await asyncio.to_thread(call)
            except (BackendError, MissingTokenError) as e:
                await sync_outbox.mark_rolled_back(db, entry, str(e))
                await db.commit()
                return self._roll_back(previous, result, e)
            except BaseException:
                self._job = previous
                raise

            await sync_outbox.mark_confirmed(db, entry)
            await db.commit()

        if self.closed:
            logger.info("Job %s session closed before confirmation arrived", previous.id)
        return result

    def _roll_back(self, previous: Job, result: TransitionResult, error: Exception) -> TransitionResult:
        logger.warning("Status change on job %s not confirmed, rolling back: %s", previous.id, error)
        if self.closed:
            return TransitionResult(
                outcome=TransitionOutcome.REJECTED,
                job=previous,
                title="Not saved",
                message="The change could not be saved.",
                order_id=result.order_id,
            )
        self._job = previous
        return TransitionResult(
            outcome=TransitionOutcome.REJECTED,
            job=previous,
            title="Not saved",
            message=f"The change could not be saved ({error}). Please try again.",
            order_id=result.order_id,
        )


async def open_job_session(
    client: BackendClient,
    job_id: str,
    session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
) -> JobSession:
    """Fetch a job from the backend and start a session on it."""
    detail = await asyncio.to_thread(client.get_job, job_id)
    return JobSession(job_from_detail(detail), client, session_maker)


class JobSessionStore:
    """Owns the open job sessions, one per job id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, JobSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def put(self, session: JobSession) -> JobSession:
        existing = self._sessions.get(session.job.id)
        if existing is not None:
            existing.close()
        self._sessions[session.job.id] = session
        return session

    def get(self, job_id: str) -> JobSession:
        session = self._sessions.get(job_id)
        if session is None:
            raise JobSessionNotFoundError(job_id)
        return session

    def close(self, job_id: str) -> None:
        session = self._sessions.pop(job_id, None)
        if session is None:
            raise JobSessionNotFoundError(job_id)
        session.close()

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
