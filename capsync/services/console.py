"""Interactive stdin control for a client peer."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from collections.abc import Awaitable, Callable
from typing import TextIO

from ..hardware import HardwareWriteFailure, Indicator

logger = logging.getLogger("capsync.console")

COMMAND_ON = "1"
COMMAND_OFF = "0"
COMMAND_QUIT = "q"


class ConsoleInput:
    """Reads ``1``/``0``/``q`` lines and acts on the local indicator.

    The console only drives the hardware; the poller notices the change and
    propagates it like a key press. End of input behaves like ``q``.
    """

    def __init__(
        self,
        indicator: Indicator,
        on_quit: Callable[[], None],
        wait_ready: Callable[[], Awaitable[None]] | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self.indicator = indicator
        self.on_quit = on_quit
        self.wait_ready = wait_ready
        self.stream = stream if stream is not None else sys.stdin

    async def run(self) -> None:
        if self.wait_ready is not None:
            await self.wait_ready()
        logger.info("Console ready: 1 = ON, 0 = OFF, q = quit.")
        lines: asyncio.Queue[str] = asyncio.Queue()
        reader = threading.Thread(
            target=_pump_lines,
            args=(asyncio.get_running_loop(), lines, self.stream),
            name="capsync-console",
            daemon=True,
        )
        reader.start()
        while True:
            line = await lines.get()
            if not line:
                logger.info("Console input closed.")
                self.on_quit()
                return
            if not await self.handle_line(line):
                return

    async def handle_line(self, line: str) -> bool:
        """Apply one command; return False when the console should stop."""
        command = line.strip().lower()
        if not command:
            return True
        if command == COMMAND_QUIT:
            self.on_quit()
            return False
        if command not in (COMMAND_ON, COMMAND_OFF):
            logger.warning("Unknown console command %r (use 1, 0 or q).", command)
            return True

        value = command == COMMAND_ON
        try:
            await asyncio.to_thread(self.indicator.write, value)
        except HardwareWriteFailure as exc:
            logger.error("Console could not set indicator: %s", exc)
        return True


def _pump_lines(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str], stream: TextIO) -> None:
    # Runs on a daemon thread; readline blocks until input or EOF.
    try:
        for line in iter(stream.readline, ""):
            loop.call_soon_threadsafe(lines.put_nowait, line)
        loop.call_soon_threadsafe(lines.put_nowait, "")
    except RuntimeError:
        # Event loop already closed.
        return
