"""Transport abstractions for capsync peers."""

from .base import SyncTransport, TransportStartupError, TransportUnavailable
from .mqtt import MqttTransport

__all__ = [
    "MqttTransport",
    "SyncTransport",
    "TransportStartupError",
    "TransportUnavailable",
]
