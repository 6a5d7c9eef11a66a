"""Local indicator poller that turns hardware changes into edges."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..hardware import Indicator, IndicatorReading
from ..state.guard import SyncGuard

logger = logging.getLogger("capsync.poller")


class IndicatorPoller:
    """Samples the indicator at a fixed interval.

    While the guard is engaged every reading only moves the baseline, so a
    remotely applied state is never reported as a local change. ``UNKNOWN``
    readings leave the baseline alone, and an unknown baseline adopts the
    next known reading silently.
    """

    def __init__(
        self,
        indicator: Indicator,
        guard: SyncGuard,
        on_edge: Callable[[bool], None],
        interval: float,
    ) -> None:
        self.indicator = indicator
        self.guard = guard
        self.on_edge = on_edge
        self.interval = interval
        self.baseline = IndicatorReading.UNKNOWN

    async def _read(self) -> IndicatorReading:
        return await asyncio.to_thread(self.indicator.read)

    async def run(self) -> None:
        self.baseline = await self._read()
        logger.info("Indicator poller started; initial reading %s.", self.baseline.name)
        while True:
            await asyncio.sleep(self.interval)
            await self.poll_once()

    async def poll_once(self) -> bool | None:
        """Take one sample; return the edge value when one was emitted."""
        guarded = self.guard.active
        epoch = self.guard.begin_sample()
        reading = await self._read()

        if guarded or self.guard.active:
            if reading.known:
                self.baseline = reading
                self.guard.note_sample(epoch)
            return None

        if not reading.known or reading == self.baseline:
            return None
        if not self.baseline.known:
            self.baseline = reading
            return None

        self.baseline = reading
        value = reading is IndicatorReading.ON
        self.on_edge(value)
        return value
