"""Models package initialization - imports all models for easy access."""

from freshroute.models.status_sync import StatusSync, SyncState, SyncTarget

__all__ = [
    "StatusSync",
    "SyncState",
    "SyncTarget",
]
