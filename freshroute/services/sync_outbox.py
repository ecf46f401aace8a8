"""
Status-sync outbox.
Records each optimistic status change and how the backend answered it.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from freshroute.models import StatusSync, SyncState, SyncTarget


async def record_pending(
    db: AsyncSession,
    job_id: str,
    target: SyncTarget,
    from_status: str,
    to_status: str,
    order_id: Optional[str] = None,
) -> StatusSync:
    """
    Add a pending outbox row before the server call is made.

    Args:
        db: Database session
        job_id: Job the change belongs to
        target: ORDER or JOB
        from_status: Status before the local change
        to_status: Status after the local change
        order_id: Order id for ORDER changes

    Returns:
        The flushed StatusSync row
    """
    entry = StatusSync(
        job_id=job_id,
        order_id=order_id,
        target=target,
        from_status=from_status,
        to_status=to_status,
        state=SyncState.PENDING,
    )
    db.add(entry)
    await db.flush()
    return entry


async def mark_confirmed(db: AsyncSession, entry: StatusSync) -> StatusSync:
    entry.state = SyncState.CONFIRMED
    entry.resolved_at = datetime.utcnow()
    await db.flush()
    return entry


async def mark_rolled_back(db: AsyncSession, entry: StatusSync, error: str) -> StatusSync:
    entry.state = SyncState.ROLLED_BACK
    entry.error = error
    entry.resolved_at = datetime.utcnow()
    await db.flush()
    return entry


async def list_entries(
    db: AsyncSession,
    job_id: Optional[str] = None,
    state: Optional[SyncState] = None,
    limit: int = 50,
) -> List[StatusSync]:
    """Most recent outbox rows, optionally filtered by job and state."""
    query = select(StatusSync)
    if job_id:
        query = query.where(StatusSync.job_id == job_id)
    if state:
        query = query.where(StatusSync.state == state)
    query = query.order_by(StatusSync.id.desc()).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
