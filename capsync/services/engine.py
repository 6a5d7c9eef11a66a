"""Client side synchronisation engine.

Transport callbacks and local edges are queued without blocking and drained
by a single loop, so connection state, the guard and the indicator are only
touched from one task.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

import msgspec
from transitions import Machine

from ..common import log_hexdump
from ..config.settings import RuntimeConfig
from ..hardware import HardwareWriteFailure, Indicator
from ..protocol.codec import CodecError, decode_sync_message, encode_sync_message
from ..state.context import ConnectionStatus, RuntimeState
from ..state.guard import SyncGuard
from ..transport.base import SyncTransport, TransportUnavailable

logger = logging.getLogger("capsync.engine")


class EngineEventKind(StrEnum):
    AVAILABILITY = "availability"
    NOTIFICATION = "notification"
    LOCAL_EDGE = "local_edge"


class EngineEvent(msgspec.Struct, frozen=True):
    kind: EngineEventKind
    state: bool = False
    payload: bytes = b""


class PeerSyncEngine:
    """Keeps one client's indicator in step with the hub."""

    STATE_DISCONNECTED = ConnectionStatus.DISCONNECTED.value
    STATE_CONNECTED = ConnectionStatus.CONNECTED.value

    def __init__(
        self,
        config: RuntimeConfig,
        state: RuntimeState,
        transport: SyncTransport,
        indicator: Indicator,
        guard: SyncGuard | None = None,
    ) -> None:
        self.config = config
        self.state = state
        self.transport = transport
        self.indicator = indicator
        self.identity = config.peer_name
        self.guard = guard or SyncGuard(config.settle_window, config.guard_max_hold)
        self.fsm_state = self.STATE_DISCONNECTED

        self.machine = Machine(
            model=self,
            states=[self.STATE_DISCONNECTED, self.STATE_CONNECTED],
            initial=self.STATE_DISCONNECTED,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition(
            "hub_up", self.STATE_DISCONNECTED, self.STATE_CONNECTED, after="_mark_connected"
        )
        self.machine.add_transition(
            "hub_down", self.STATE_CONNECTED, self.STATE_DISCONNECTED, after="_mark_disconnected"
        )

        self._events: asyncio.Queue[EngineEvent] = asyncio.Queue(config.event_queue_limit)
        self._connected = asyncio.Event()

        transport.request_service()
        transport.on_availability(self.submit_availability)
        transport.on_notification(self.submit_notification)

    @property
    def connected(self) -> bool:
        return self.fsm_state == self.STATE_CONNECTED

    async def wait_connected(self) -> None:
        await self._connected.wait()

    # --- Non-blocking entry points -----------------------------------

    def submit_availability(self, available: bool) -> None:
        self._enqueue(EngineEvent(EngineEventKind.AVAILABILITY, state=available))

    def submit_notification(self, payload: bytes) -> None:
        self._enqueue(EngineEvent(EngineEventKind.NOTIFICATION, payload=payload))

    def submit_local_edge(self, state: bool) -> None:
        self._enqueue(EngineEvent(EngineEventKind.LOCAL_EDGE, state=state))

    def _enqueue(self, event: EngineEvent) -> None:
        try:
            self._events.put_nowait(event)
        except asyncio.QueueFull:
            self.state.stats.queue_overflows += 1
            logger.error("Engine event queue full; dropping %s event.", event.kind.value)

    # --- Processing loop ---------------------------------------------

    async def run(self) -> None:
        logger.info("Sync engine started for peer '%s'.", self.identity)
        while True:
            event = await self._events.get()
            try:
                await self.process(event)
            finally:
                self._events.task_done()

    async def process(self, event: EngineEvent) -> None:
        if event.kind is EngineEventKind.AVAILABILITY:
            await self.handle_availability(event.state)
        elif event.kind is EngineEventKind.NOTIFICATION:
            await self.handle_notification(event.payload)
        else:
            await self.handle_local_edge(event.state)

    async def drain(self) -> None:
        """Process every queued event; used when the loop is not running."""
        while not self._events.empty():
            event = self._events.get_nowait()
            try:
                await self.process(event)
            finally:
                self._events.task_done()

    # --- Handlers ----------------------------------------------------

    def _mark_connected(self) -> None:
        self.state.connection = ConnectionStatus.CONNECTED
        self._connected.set()

    def _mark_disconnected(self) -> None:
        self.state.connection = ConnectionStatus.DISCONNECTED
        self._connected.clear()

    async def handle_availability(self, available: bool) -> None:
        if not self.trigger("hub_up" if available else "hub_down"):
            return
        logger.info("Hub %s", "connected" if available else "disconnected")
        if not available:
            return
        try:
            await self.transport.subscribe_notifications()
        except TransportUnavailable as exc:
            logger.warning("Could not subscribe to notifications: %s", exc)

    async def handle_notification(self, payload: bytes) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, "NOTIFY <", payload)
        try:
            message = decode_sync_message(payload)
        except CodecError as exc:
            self.state.stats.decode_failures += 1
            logger.warning("Discarding undecodable notification: %s", exc)
            return

        self.state.stats.notifications += 1
        logger.info(
            "Received indicator state %s (from: %s)",
            "ON" if message.state else "OFF",
            message.origin,
        )

        if message.origin == self.identity:
            self.state.stats.echoes_suppressed += 1
            return

        try:
            async with self.guard.engaged():
                await asyncio.to_thread(self.indicator.write, message.state)
                self.state.record_indicator(message.state)
        except HardwareWriteFailure as exc:
            self.state.stats.hardware_write_failures += 1
            logger.error("Failed to apply remote indicator state: %s", exc)
            return
        self.state.stats.remote_applies += 1

    async def handle_local_edge(self, value: bool) -> None:
        self.state.stats.local_edges += 1
        self.state.record_indicator(value)
        logger.info("Indicator changed locally: %s", "ON" if value else "OFF")

        if not self.connected:
            self.state.stats.requests_dropped += 1
            logger.info("Hub unavailable; local change not sent.")
            return

        try:
            await self.transport.send_request(encode_sync_message(value, self.identity))
        except TransportUnavailable as exc:
            self.state.stats.requests_dropped += 1
            logger.warning("Dropping indicator request: %s", exc)
            return
        self.state.stats.requests_sent += 1
