"""Periodic observer of the hub connection status."""

from __future__ import annotations

import asyncio
import logging

from ..state.context import ConnectionStatus, RuntimeState

logger = logging.getLogger("capsync.monitor")


class AvailabilityMonitor:
    """Logs hub connection transitions; never changes state."""

    def __init__(self, state: RuntimeState, interval: float) -> None:
        self.state = state
        self.interval = interval
        self.last_status = ConnectionStatus.DISCONNECTED

    def check(self) -> bool:
        current = self.state.connection
        if current is self.last_status:
            return False
        self.last_status = current
        if current is ConnectionStatus.CONNECTED:
            logger.info("[Monitor] Hub connected")
        else:
            logger.info("[Monitor] Hub disconnected")
        return True

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.check()
