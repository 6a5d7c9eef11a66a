"""Hub side coordinator: applies requests and fans them out."""

from __future__ import annotations

import asyncio
import logging

from ..common import log_hexdump
from ..config.settings import RuntimeConfig
from ..hardware import HardwareWriteFailure, Indicator
from ..protocol.codec import CodecError, decode_sync_message, encode_sync_message
from ..state.context import ConnectionStatus, RuntimeState
from ..transport.base import SyncTransport, TransportUnavailable

logger = logging.getLogger("capsync.hub")


class HubCoordinator:
    """Authoritative indicator owner.

    Each request results in exactly one hardware write and one broadcast to
    every subscriber, the requester included. The broadcast carries the
    requester's name so peers can recognise their own echo.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        state: RuntimeState,
        transport: SyncTransport,
        indicator: Indicator,
    ) -> None:
        self.config = config
        self.state = state
        self.transport = transport
        self.indicator = indicator
        self._requests: asyncio.Queue[bytes] = asyncio.Queue(config.event_queue_limit)

        transport.offer_service()
        transport.on_request(self.submit_request)
        transport.on_availability(self._on_session)

    def _on_session(self, online: bool) -> None:
        self.state.connection = ConnectionStatus.CONNECTED if online else ConnectionStatus.DISCONNECTED

    def submit_request(self, payload: bytes) -> None:
        try:
            self._requests.put_nowait(payload)
        except asyncio.QueueFull:
            self.state.stats.queue_overflows += 1
            logger.error("Hub request queue full; dropping request.")

    async def run(self) -> None:
        logger.info("Hub coordinator ready.")
        while True:
            payload = await self._requests.get()
            try:
                await self.handle_request(payload)
            finally:
                self._requests.task_done()

    async def drain(self) -> None:
        """Process every queued request; used when the loop is not running."""
        while not self._requests.empty():
            payload = self._requests.get_nowait()
            try:
                await self.handle_request(payload)
            finally:
                self._requests.task_done()

    async def handle_request(self, payload: bytes) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, "REQUEST <", payload)
        try:
            message = decode_sync_message(payload)
        except CodecError as exc:
            self.state.stats.decode_failures += 1
            logger.warning("Discarding undecodable request: %s", exc)
            return

        self.state.stats.requests_received += 1
        logger.info(
            "Request from %s: indicator %s",
            message.origin,
            "ON" if message.state else "OFF",
        )

        try:
            await asyncio.to_thread(self.indicator.write, message.state)
        except HardwareWriteFailure as exc:
            self.state.stats.hardware_write_failures += 1
            logger.error("Failed to drive hub indicator: %s", exc)
        else:
            self.state.record_indicator(message.state)

        try:
            await self.transport.broadcast(encode_sync_message(message.state, message.origin))
        except TransportUnavailable as exc:
            logger.warning("Broadcast failed: %s", exc)
            return
        self.state.stats.broadcasts += 1
