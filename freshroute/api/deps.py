"""
Shared FastAPI dependencies for the gateway routers.
"""

from typing import Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freshroute.client.api_client import BackendClient
from freshroute.core.events import RealtimeHub, realtime_hub
from freshroute.database import async_session_maker
from freshroute.services.job_session import JobSessionStore


def get_bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """Session token forwarded by the mobile app, if any."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_backend_client(authorization: Optional[str] = Header(default=None)) -> BackendClient:
    """Backend client that forwards the caller's bearer token."""
    token = get_bearer_token(authorization)
    return BackendClient(token_provider=lambda: token)


def get_session_store(request: Request) -> JobSessionStore:
    store = getattr(request.app.state, "job_sessions", None)
    if store is None:
        store = JobSessionStore()
        request.app.state.job_sessions = store
    return store


def get_hub() -> RealtimeHub:
    return realtime_hub


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory job sessions use for the status-sync outbox."""
    return async_session_maker
