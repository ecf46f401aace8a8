"""
StatusSync database model.
One row per local status transition that must be confirmed by the backend.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from freshroute.database import Base


class SyncState(str, enum.Enum):
    """Where a transition stands with the backend."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class SyncTarget(str, enum.Enum):
    """What the transition changed."""
    ORDER = "ORDER"
    JOB = "JOB"


class StatusSync(Base):
    """
    Outbox record of an optimistic status change.
    Created as pending before the server call, then confirmed or rolled back.
    """
    __tablename__ = "status_syncs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    target: Mapped[SyncTarget] = mapped_column(Enum(SyncTarget), nullable=False)
    from_status: Mapped[str] = mapped_column(String(32), nullable=False)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    state: Mapped[SyncState] = mapped_column(
        Enum(SyncState),
        nullable=False,
        default=SyncState.PENDING,
        index=True,
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StatusSync(id={self.id}, job_id={self.job_id}, order_id={self.order_id}, "
            f"{self.from_status}->{self.to_status}, state={self.state})>"
        )
