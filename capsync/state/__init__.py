"""Runtime state helpers for capsync."""

from .context import ConnectionStatus, RuntimeState, SupervisorStats, SyncStats, create_runtime_state
from .guard import SyncGuard

__all__ = [
    "ConnectionStatus",
    "RuntimeState",
    "SupervisorStats",
    "SyncGuard",
    "SyncStats",
    "create_runtime_state",
]
