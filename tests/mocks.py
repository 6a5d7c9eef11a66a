"""Shared mocks for capsync tests."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

from capsync.hardware import HardwareWriteFailure, IndicatorReading
from capsync.transport.base import AvailabilityCallback, PayloadCallback, TransportUnavailable


@dataclass
class FakeIndicator:
    """In-memory indicator; ``press`` simulates a local hardware change."""

    value: bool | None = False
    fail_writes: bool = False
    writes: list[bool] = field(default_factory=list)
    closed: bool = False

    def read(self) -> IndicatorReading:
        if self.value is None:
            return IndicatorReading.UNKNOWN
        return IndicatorReading.from_bool(self.value)

    def write(self, state: bool) -> None:
        if self.fail_writes:
            raise HardwareWriteFailure("simulated write failure")
        self.writes.append(state)
        self.value = state

    def press(self, state: bool | None) -> None:
        self.value = state

    def close(self) -> None:
        self.closed = True


class MemoryBroker:
    """Routes requests and notifications between in-memory transports."""

    def __init__(self) -> None:
        self.transports: list[MemoryTransport] = []
        self.hub_available = False

    def attach(self, transport: MemoryTransport) -> None:
        self.transports.append(transport)

    def set_hub_available(self, available: bool) -> None:
        self.hub_available = available
        for transport in self.transports:
            transport.set_session(available)

    def route_request(self, payload: bytes) -> None:
        for transport in self.transports:
            if transport.offering:
                for callback in transport.request_callbacks:
                    callback(payload)

    def route_notification(self, payload: bytes) -> None:
        for transport in self.transports:
            if transport.subscribed:
                for callback in transport.notification_callbacks:
                    callback(payload)


class MemoryTransport:
    """SyncTransport implementation backed by a MemoryBroker."""

    def __init__(self, broker: MemoryBroker) -> None:
        self.broker = broker
        self.offering = False
        self.requesting = False
        self.connected = False
        self.subscribed = False
        self.subscribe_calls = 0
        self.sent_requests: list[bytes] = []
        self.broadcasts: list[bytes] = []
        self.availability_callbacks: list[AvailabilityCallback] = []
        self.notification_callbacks: list[PayloadCallback] = []
        self.request_callbacks: list[PayloadCallback] = []
        broker.attach(self)

    def offer_service(self) -> None:
        self.offering = True

    def request_service(self) -> None:
        self.requesting = True

    def on_availability(self, callback: AvailabilityCallback) -> None:
        self.availability_callbacks.append(callback)

    def on_notification(self, callback: PayloadCallback) -> None:
        self.notification_callbacks.append(callback)

    def on_request(self, callback: PayloadCallback) -> None:
        self.request_callbacks.append(callback)

    def set_session(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        if not connected:
            self.subscribed = False
        for callback in self.availability_callbacks:
            callback(connected)

    async def subscribe_notifications(self) -> None:
        if not self.connected:
            raise TransportUnavailable("memory transport offline")
        self.subscribed = True
        self.subscribe_calls += 1

    async def broadcast(self, payload: bytes) -> None:
        if not self.connected:
            raise TransportUnavailable("memory transport offline")
        self.broadcasts.append(payload)
        self.broker.route_notification(payload)

    async def send_request(self, payload: bytes) -> None:
        if not self.connected:
            raise TransportUnavailable("memory transport offline")
        self.sent_requests.append(payload)
        self.broker.route_request(payload)

    async def run(self) -> None:
        await asyncio.Event().wait()


@contextlib.asynccontextmanager
async def running(*factories: Callable[[], Awaitable[None]]) -> AsyncIterator[list[asyncio.Task[None]]]:
    """Run coroutine factories as background tasks for the duration of a block."""
    tasks = [asyncio.create_task(factory()) for factory in factories]
    try:
        yield tasks
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, step: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(step)
