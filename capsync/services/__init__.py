"""Service components for capsync peers."""

from .console import ConsoleInput
from .engine import PeerSyncEngine
from .hub import HubCoordinator
from .monitor import AvailabilityMonitor
from .poller import IndicatorPoller
from .task_supervisor import SupervisedTaskSpec, supervise_task

__all__ = [
    "AvailabilityMonitor",
    "ConsoleInput",
    "HubCoordinator",
    "IndicatorPoller",
    "PeerSyncEngine",
    "SupervisedTaskSpec",
    "supervise_task",
]
