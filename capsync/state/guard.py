"""Guard that keeps a remotely applied indicator state from echoing back."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ..const import DEFAULT_GUARD_MAX_HOLD, DEFAULT_SETTLE_WINDOW

logger = logging.getLogger("capsync.guard")


class SyncGuard:
    """Flag raised while a remote state is written and settling.

    The guard is released once the settle window has elapsed and the poller
    has completed at least one sample that started after the hardware write
    returned. ``max_hold`` bounds the total wait when no such sample arrives.
    A failing write releases the guard immediately.

    Samples are tagged with an epoch from :meth:`begin_sample`; a read that
    began before the write finished carries a stale epoch and does not count.
    """

    def __init__(
        self,
        settle_window: float = DEFAULT_SETTLE_WINDOW,
        max_hold: float = DEFAULT_GUARD_MAX_HOLD,
    ) -> None:
        self.settle_window = settle_window
        self.max_hold = max(max_hold, settle_window)
        self._active = False
        self._epoch = 0
        self._awaiting_sample = False
        self._sampled = asyncio.Event()
        self.forced_releases = 0

    @property
    def active(self) -> bool:
        return self._active

    def begin_sample(self) -> int:
        return self._epoch

    def note_sample(self, epoch: int) -> None:
        if self._awaiting_sample and epoch == self._epoch:
            self._sampled.set()

    @asynccontextmanager
    async def engaged(self) -> AsyncIterator[None]:
        self._active = True
        self._awaiting_sample = False
        try:
            yield
            self._epoch += 1
            self._sampled.clear()
            self._awaiting_sample = True
            await self._settle()
        finally:
            self._awaiting_sample = False
            self._active = False

    async def _settle(self) -> None:
        await asyncio.sleep(self.settle_window)
        if self._sampled.is_set():
            return
        remaining = self.max_hold - self.settle_window
        if remaining <= 0:
            self.forced_releases += 1
            return
        try:
            await asyncio.wait_for(self._sampled.wait(), timeout=remaining)
        except TimeoutError:
            self.forced_releases += 1
            logger.debug(
                "No indicator sample within %.2fs of the write; releasing guard.",
                self.max_hold,
            )
