import os
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import freshroute.models  # noqa: F401  registers the outbox table
from freshroute.api.deps import get_backend_client, get_hub, get_session_maker, get_session_store
from freshroute.core.errors import BackendError, MissingTokenError
from freshroute.core.events import RealtimeHub
from freshroute.database import Base, get_db
from freshroute.main import app
from freshroute.schemas.job import JobBoard, JobDetail, OrderStatus
from freshroute.schemas.telemetry import TelemetrySnapshot
from freshroute.services.job_session import JobSessionStore
from freshroute.services.normalization import (
    normalize_alert,
    normalize_job_board,
    normalize_job_detail,
    normalize_telemetry,
)
from tests.fixtures.test_data import (
    empty_job_detail_payload,
    job_board_payload,
    job_detail_payload,
)

# Use in-memory SQLite for tests by default, unless TEST_DATABASE_URL is set
TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


class FakeBackendClient:
    """
    Stand-in for BackendClient that serves canned payloads through the
    real normalization layer and records every write.
    """

    def __init__(self) -> None:
        self.token: Optional[str] = "test-token"
        self.jobs_payload: Dict = job_board_payload()
        self.details: Dict[str, Dict] = {
            "JOB-1": job_detail_payload("JOB-1"),
            "JOB-EMPTY": empty_job_detail_payload("JOB-EMPTY"),
        }
        self.telemetry: Optional[Dict] = {"id": "VEH-01", "current_temp": 14.5, "current_humidity": 82.0}
        self.alerts: List[Dict] = []
        self.read_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None
        self.writes: List[tuple] = []

    def _check_token(self) -> None:
        if not self.token:
            raise MissingTokenError()

    def _read(self) -> None:
        self._check_token()
        if self.read_error is not None:
            raise self.read_error

    def get_jobs(self) -> JobBoard:
        self._read()
        return normalize_job_board(self.jobs_payload)

    def get_job(self, job_id: str) -> JobDetail:
        self._read()
        if job_id not in self.details:
            raise BackendError("Backend returned HTTP 404", status_code=404)
        return normalize_job_detail(self.details[job_id], job_id)

    def update_order_status(self, job_id: str, order_id: str, status: OrderStatus) -> Dict:
        self._check_token()
        self.writes.append(("order", job_id, order_id, status.value))
        if self.write_error is not None:
            raise self.write_error
        return {"id": order_id, "status": status.value}

    def complete_job(self, job_id: str) -> Dict:
        self._check_token()
        self.writes.append(("job", job_id, None, "completed"))
        if self.write_error is not None:
            raise self.write_error
        return {"id": job_id, "status": "completed"}

    def get_telemetry_snapshot(self, vehicle_id: str) -> TelemetrySnapshot:
        self._read()
        return TelemetrySnapshot(
            telemetry=normalize_telemetry(self.telemetry),
            latest_unread_alert=normalize_alert(self.alerts[0], vehicle_id) if self.alerts else None,
        )


@pytest.fixture
async def test_engine():
    """Fresh test database engine per test."""
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False} if "sqlite" in TEST_DB_URL else {},
        poolclass=StaticPool if "sqlite" in TEST_DB_URL else None,
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def backend() -> FakeBackendClient:
    return FakeBackendClient()


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub()


@pytest.fixture
def session_store() -> JobSessionStore:
    store = JobSessionStore()
    yield store
    store.close_all()


@pytest.fixture
async def client(session_maker, backend, hub, session_store) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the backend, hub, session store and outbox overridden."""
    async def override_get_db():
        async with session_maker() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_backend_client] = lambda: backend
    app.dependency_overrides[get_hub] = lambda: hub
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_session_maker] = lambda: session_maker

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
