"""Runtime state container for a capsync peer."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import msgspec

if TYPE_CHECKING:
    from ..config.settings import RuntimeConfig


class ConnectionStatus(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class SyncStats(msgspec.Struct):
    """Counters for the synchronisation protocol."""

    local_edges: int = 0
    requests_sent: int = 0
    requests_dropped: int = 0
    requests_received: int = 0
    notifications: int = 0
    echoes_suppressed: int = 0
    remote_applies: int = 0
    broadcasts: int = 0
    hardware_write_failures: int = 0
    decode_failures: int = 0
    queue_overflows: int = 0

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


class SupervisorStats(msgspec.Struct):
    """Task supervisor statistics."""

    restarts: int = 0
    last_failure_unix: float = 0.0
    last_exception: str | None = None
    backoff_seconds: float = 0.0
    fatal: bool = False

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


def _sync_stats_factory() -> SyncStats:
    return SyncStats()


def _supervisor_stats_factory() -> dict[str, SupervisorStats]:
    return {}


class RuntimeState(msgspec.Struct):
    """Mutable state shared by the tasks of one peer process.

    Only the hub coordinator (hub) or the sync engine (client) writes
    ``indicator_state``; everything runs on the event loop thread.
    """

    role: str = ""
    peer_name: str = ""
    mqtt_topic_prefix: str = ""
    connection: ConnectionStatus = ConnectionStatus.DISCONNECTED
    indicator_state: bool | None = None
    last_change_unix: float = 0.0
    started_unix: float = msgspec.field(default_factory=time.time)
    stats: SyncStats = msgspec.field(default_factory=_sync_stats_factory)
    supervisor_stats: dict[str, SupervisorStats] = msgspec.field(default_factory=_supervisor_stats_factory)

    def configure(self, config: RuntimeConfig) -> None:
        self.role = config.role
        self.peer_name = config.peer_name
        self.mqtt_topic_prefix = config.mqtt_topic

    @property
    def is_connected(self) -> bool:
        return self.connection is ConnectionStatus.CONNECTED

    def record_indicator(self, value: bool) -> None:
        if self.indicator_state is not value:
            self.last_change_unix = time.time()
        self.indicator_state = value

    def record_supervisor_failure(
        self,
        name: str,
        *,
        backoff: float,
        exc: BaseException,
        fatal: bool = False,
    ) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            stats = SupervisorStats()
            self.supervisor_stats[name] = stats
        stats.restarts += 1
        stats.last_failure_unix = time.time()
        stats.last_exception = f"{exc.__class__.__name__}: {exc}"
        stats.backoff_seconds = backoff
        stats.fatal = fatal

    def mark_supervisor_healthy(self, name: str) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            return
        stats.backoff_seconds = 0.0
        stats.fatal = False

    def build_metrics_snapshot(self) -> dict[str, Any]:
        """Flatten state into a JSON friendly mapping for status and metrics."""
        return {
            "role": self.role,
            "peer_name": self.peer_name,
            "topic_prefix": self.mqtt_topic_prefix,
            "connection": self.connection.value,
            "indicator_state": self.indicator_state,
            "last_change_unix": self.last_change_unix,
            "uptime_seconds": max(0.0, time.time() - self.started_unix),
            "sync": self.stats.as_dict(),
            "supervisors": {name: stats.as_dict() for name, stats in self.supervisor_stats.items()},
        }


def create_runtime_state(config: RuntimeConfig) -> RuntimeState:
    state = RuntimeState()
    state.configure(config)
    return state
