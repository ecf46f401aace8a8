"""
Tests for the active job session: optimistic updates, backend
confirmation, rollback and the status-sync outbox.
"""

import pytest

from freshroute.core.errors import BackendError, JobSessionNotFoundError, OrderNotFoundError
from freshroute.models import SyncState, SyncTarget
from freshroute.schemas.geofence import ReportedLocation
from freshroute.schemas.job import JobStatus, OrderStatus
from freshroute.services import sync_outbox
from freshroute.services.geofence import ReportedLocationProvider
from freshroute.services.job_session import JobSession, JobSessionStore, open_job_session
from freshroute.services.job_state import TransitionOutcome
from tests.fixtures.test_data import KURUNEGALA, MATALE, meters_north


def at(coords):
    return ReportedLocationProvider(ReportedLocation(latitude=coords[0], longitude=coords[1]))


@pytest.fixture
async def job_session(backend, session_maker):
    session = await open_job_session(backend, "JOB-1", session_maker)
    yield session
    session.close()


async def outbox(session_maker, **filters):
    async with session_maker() as db:
        return await sync_outbox.list_entries(db, **filters)


class UnavailableOutbox:
    """Session maker whose sessions cannot be opened."""

    def __call__(self):
        return self

    async def __aenter__(self):
        raise RuntimeError("database is locked")

    async def __aexit__(self, *exc):
        return False


class TestOpenSession:

    async def test_job_loaded_from_detail(self, job_session):
        assert job_session.job.id == "JOB-1"
        assert job_session.job.status == JobStatus.PENDING
        assert job_session.next_stop.id == "ORD-1"

    async def test_unknown_job(self, backend, session_maker):
        with pytest.raises(BackendError):
            await open_job_session(backend, "JOB-404", session_maker)


class TestPickupGate:
    """Tests for geofence-gated pickups."""

    async def test_pickup_disabled_until_verified(self, job_session):
        assert job_session.pickup_verified("ORD-1") is False

        result = await job_session.mark_picked_up("ORD-1")
        assert result.outcome == TransitionOutcome.REJECTED
        assert job_session.job.get_order("ORD-1").status == OrderStatus.PENDING

    async def test_verification_enables_pickup(self, job_session):
        result = await job_session.verify_pickup("ORD-1", at(meters_north(MATALE, 30)))

        assert result.success is True
        assert job_session.pickup_verified("ORD-1") is True
        assert job_session.pickup_verified("ORD-2") is False

    async def test_failed_verification_keeps_pickup_disabled(self, job_session):
        result = await job_session.verify_pickup("ORD-1", at(KURUNEGALA))

        assert result.success is False
        assert "away from the pickup location" in result.error
        assert job_session.pickup_verified("ORD-1") is False

    async def test_unknown_order(self, job_session):
        with pytest.raises(OrderNotFoundError):
            await job_session.verify_pickup("ORD-99", at(MATALE))

    async def test_result_discarded_after_close(self, job_session):
        """A verification finishing after the session closed changes nothing."""
        job_session.close()
        result = await job_session.verify_pickup("ORD-1", at(MATALE))

        assert result.success is True
        assert job_session.pickup_verified("ORD-1") is False


class TestStatusSync:
    """Tests for optimistic updates confirmed by the backend."""

    async def test_confirmed_pickup(self, job_session, backend, session_maker):
        await job_session.verify_pickup("ORD-1", at(MATALE))
        result = await job_session.mark_picked_up("ORD-1")

        assert result.outcome == TransitionOutcome.APPLIED
        assert job_session.job.get_order("ORD-1").status == OrderStatus.PICKED_UP
        assert job_session.job.status == JobStatus.IN_PROGRESS
        assert backend.writes == [("order", "JOB-1", "ORD-1", "picked_up")]

        entries = await outbox(session_maker, job_id="JOB-1")
        assert len(entries) == 1
        assert entries[0].state == SyncState.CONFIRMED
        assert entries[0].target == SyncTarget.ORDER
        assert (entries[0].from_status, entries[0].to_status) == ("pending", "picked_up")
        assert entries[0].resolved_at is not None

    async def test_rollback_on_backend_failure(self, job_session, backend, session_maker):
        """A refused update restores the previous state and says so."""
        await job_session.verify_pickup("ORD-1", at(MATALE))
        backend.write_error = BackendError("Backend returned HTTP 503", status_code=503)

        result = await job_session.mark_picked_up("ORD-1")

        assert result.outcome == TransitionOutcome.REJECTED
        assert result.title == "Not saved"
        assert job_session.job.get_order("ORD-1").status == OrderStatus.PENDING
        assert job_session.job.status == JobStatus.PENDING

        entries = await outbox(session_maker, state=SyncState.ROLLED_BACK)
        assert len(entries) == 1
        assert "503" in entries[0].error

    async def test_retry_after_rollback(self, job_session, backend, session_maker):
        await job_session.verify_pickup("ORD-1", at(MATALE))
        backend.write_error = BackendError("Cannot reach backend")
        await job_session.mark_picked_up("ORD-1")

        backend.write_error = None
        result = await job_session.mark_picked_up("ORD-1")

        assert result.outcome == TransitionOutcome.APPLIED
        states = [e.state for e in await outbox(session_maker, job_id="JOB-1")]
        assert states == [SyncState.CONFIRMED, SyncState.ROLLED_BACK]

    async def test_noop_is_not_sent(self, job_session, backend):
        await job_session.verify_pickup("ORD-1", at(MATALE))
        await job_session.mark_picked_up("ORD-1")
        result = await job_session.mark_picked_up("ORD-1")

        assert result.outcome == TransitionOutcome.NOOP
        assert len(backend.writes) == 1

    async def test_rejected_is_not_sent(self, job_session, backend, session_maker):
        result = await job_session.mark_delivered("ORD-1")

        assert result.outcome == TransitionOutcome.REJECTED
        assert backend.writes == []
        assert await outbox(session_maker) == []

    async def test_full_job(self, job_session, backend, session_maker):
        """Both orders picked up and delivered, then the job completed."""
        for order_id, farm in (("ORD-1", MATALE), ("ORD-2", KURUNEGALA)):
            await job_session.verify_pickup(order_id, at(farm))
            assert (await job_session.mark_picked_up(order_id)).applied

        rejected = await job_session.mark_completed()
        assert rejected.outcome == TransitionOutcome.REJECTED

        for order_id in ("ORD-1", "ORD-2"):
            assert (await job_session.mark_delivered(order_id)).applied

        assert job_session.next_stop is None
        assert job_session.job.status == JobStatus.COMPLETED

        completed = await job_session.mark_completed()
        assert completed.applied
        assert backend.writes[-1] == ("job", "JOB-1", None, "completed")

        entries = await outbox(session_maker, job_id="JOB-1")
        assert len(entries) == 5
        assert all(e.state == SyncState.CONFIRMED for e in entries)
        assert entries[0].target == SyncTarget.JOB

    async def test_outbox_failure_leaves_job_untouched(self, job_session, backend):
        """A change that cannot be recorded is neither applied nor sent."""
        session = JobSession(job_session.job, backend, UnavailableOutbox())
        await session.verify_pickup("ORD-1", at(MATALE))

        with pytest.raises(RuntimeError):
            await session.mark_picked_up("ORD-1")

        assert backend.writes == []
        assert session.job.get_order("ORD-1").status == OrderStatus.PENDING
        assert session.job.status == JobStatus.PENDING

    async def test_unexpected_confirmation_error_restores_job(self, job_session, backend):
        await job_session.verify_pickup("ORD-1", at(MATALE))
        backend.write_error = RuntimeError("connection pool exhausted")

        with pytest.raises(RuntimeError):
            await job_session.mark_picked_up("ORD-1")

        assert job_session.job.get_order("ORD-1").status == OrderStatus.PENDING

    async def test_client_bound_with_transition(self, job_session, backend):
        """A transition confirms through the client it was called with."""
        relogged = type(backend)()
        relogged.token = "fresh-token"
        await job_session.verify_pickup("ORD-1", at(MATALE))

        result = await job_session.mark_picked_up("ORD-1", relogged)

        assert result.applied
        assert job_session.client is relogged
        assert backend.writes == []
        assert relogged.writes == [("order", "JOB-1", "ORD-1", "picked_up")]

        await job_session.mark_delivered("ORD-1")
        assert relogged.writes[-1] == ("order", "JOB-1", "ORD-1", "delivered")


class TestJobSessionStore:
    """Tests for the session registry."""

    async def test_put_replaces_and_closes(self, backend, session_maker):
        store = JobSessionStore()
        first = store.put(await open_job_session(backend, "JOB-1", session_maker))
        second = store.put(await open_job_session(backend, "JOB-1", session_maker))

        assert first.closed is True
        assert store.get("JOB-1") is second
        assert len(store) == 1

    async def test_close(self, backend, session_maker):
        store = JobSessionStore()
        session = store.put(await open_job_session(backend, "JOB-1", session_maker))
        store.close("JOB-1")

        assert session.closed is True
        with pytest.raises(JobSessionNotFoundError):
            store.get("JOB-1")
        with pytest.raises(JobSessionNotFoundError):
            store.close("JOB-1")

    async def test_close_all(self, backend, session_maker):
        store = JobSessionStore()
        session = store.put(await open_job_session(backend, "JOB-1", session_maker))
        store.close_all()

        assert session.closed is True
        assert len(store) == 0
