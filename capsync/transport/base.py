"""Transport capability surface used by the hub coordinator and sync engine."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

AvailabilityCallback = Callable[[bool], None]
PayloadCallback = Callable[[bytes], None]


class TransportUnavailable(ConnectionError):
    """The transport has no live session; the operation was not performed."""


class TransportStartupError(RuntimeError):
    """The transport could not be acquired during startup."""


@runtime_checkable
class SyncTransport(Protocol):
    """Publish/subscribe surface with a request and a notification channel.

    Callbacks are invoked from the transport's own task and must not block.
    Availability callbacks only fire on changes.
    """

    def offer_service(self) -> None: ...

    def request_service(self) -> None: ...

    def on_availability(self, callback: AvailabilityCallback) -> None: ...

    def on_notification(self, callback: PayloadCallback) -> None: ...

    def on_request(self, callback: PayloadCallback) -> None: ...

    async def subscribe_notifications(self) -> None: ...

    async def broadcast(self, payload: bytes) -> None: ...

    async def send_request(self, payload: bytes) -> None: ...

    async def run(self) -> None: ...


__all__ = [
    "AvailabilityCallback",
    "PayloadCallback",
    "SyncTransport",
    "TransportStartupError",
    "TransportUnavailable",
]
