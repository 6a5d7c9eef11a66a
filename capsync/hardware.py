"""Indicator hardware adapters.

Both adapters talk to Linux sysfs with plain blocking file I/O. Callers on the
event loop run them through :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import logging
import time
from enum import IntEnum
from pathlib import Path
from typing import Protocol, runtime_checkable

from .const import (
    DEFAULT_GPIO_PIN,
    DEFAULT_GPIO_ROOT,
    DEFAULT_LED_NAME_PATTERN,
    DEFAULT_LED_SEARCH_DIR,
    GPIO_EXPORT_SETTLE_SECONDS,
)

logger = logging.getLogger("capsync.hardware")


class IndicatorReading(IntEnum):
    UNKNOWN = -1
    OFF = 0
    ON = 1

    @classmethod
    def from_bool(cls, value: bool) -> "IndicatorReading":
        return cls.ON if value else cls.OFF

    @property
    def known(self) -> bool:
        return self is not IndicatorReading.UNKNOWN


class HardwareWriteFailure(RuntimeError):
    """Raised when the indicator could not be driven."""


class HardwareUnavailable(RuntimeError):
    """Raised when no indicator device can be located."""


@runtime_checkable
class Indicator(Protocol):
    def read(self) -> IndicatorReading: ...

    def write(self, state: bool) -> None: ...

    def close(self) -> None: ...


def _read_level(path: Path) -> IndicatorReading:
    try:
        raw = path.read_text(encoding="ascii").strip()
        return IndicatorReading.from_bool(int(raw) > 0)
    except (OSError, ValueError) as exc:
        logger.debug("Indicator read from %s failed: %s", path, exc)
        return IndicatorReading.UNKNOWN


def _write_level(path: Path, state: bool) -> None:
    try:
        path.write_text("1" if state else "0", encoding="ascii")
    except OSError as exc:
        raise HardwareWriteFailure(f"Failed to write {path}: {exc}") from exc


class SysfsIndicator:
    """CapsLock LED exposed as ``/sys/class/leds/<name>/brightness``."""

    def __init__(self, brightness_path: str | Path) -> None:
        self.path = Path(brightness_path)

    @classmethod
    def discover(
        cls,
        search_dir: str | Path = DEFAULT_LED_SEARCH_DIR,
        pattern: str = DEFAULT_LED_NAME_PATTERN,
    ) -> "SysfsIndicator":
        """Locate the first LED whose name contains ``pattern``.

        The numeric input index in the LED name changes across boots and
        keyboards, so the path is searched rather than configured.
        """
        base = Path(search_dir)
        try:
            candidates = sorted(entry for entry in base.iterdir() if pattern in entry.name)
        except OSError as exc:
            raise HardwareUnavailable(f"Cannot list {base}: {exc}") from exc

        for entry in candidates:
            brightness = entry / "brightness"
            if brightness.exists():
                logger.info("Found indicator LED at %s", brightness)
                return cls(brightness)
        raise HardwareUnavailable(f"No LED matching '{pattern}' under {base}")

    def read(self) -> IndicatorReading:
        return _read_level(self.path)

    def write(self, state: bool) -> None:
        _write_level(self.path, state)
        logger.debug("Set LED %s to %s", self.path, "ON" if state else "OFF")

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"SysfsIndicator({str(self.path)!r})"


class GpioIndicator:
    """LED wired to a sysfs GPIO line, used by the hub."""

    def __init__(
        self,
        pin: int = DEFAULT_GPIO_PIN,
        gpio_root: str | Path = DEFAULT_GPIO_ROOT,
        settle_seconds: float = GPIO_EXPORT_SETTLE_SECONDS,
    ) -> None:
        self.pin = pin
        self.root = Path(gpio_root)
        self._settle_seconds = settle_seconds
        self._pin_dir = self.root / f"gpio{pin}"

    @property
    def value_path(self) -> Path:
        return self._pin_dir / "value"

    def setup(self) -> None:
        """Export the pin and configure it as an output.

        Failures are logged and tolerated; the hub keeps serving requests and
        later writes report their own failures.
        """
        try:
            (self.root / "export").write_text(str(self.pin), encoding="ascii")
        except OSError as exc:
            logger.warning(
                "Could not export GPIO%d (may already be exported): %s", self.pin, exc
            )

        time.sleep(self._settle_seconds)

        try:
            (self._pin_dir / "direction").write_text("out", encoding="ascii")
        except OSError as exc:
            logger.warning(
                "GPIO%d initialization failed, continuing anyway: %s", self.pin, exc
            )
            return
        logger.info("GPIO%d initialized as output", self.pin)

    def read(self) -> IndicatorReading:
        return _read_level(self.value_path)

    def write(self, state: bool) -> None:
        _write_level(self.value_path, state)
        logger.debug("Set GPIO%d to %s", self.pin, "ON" if state else "OFF")

    def close(self) -> None:
        try:
            (self.root / "unexport").write_text(str(self.pin), encoding="ascii")
        except OSError as exc:
            logger.warning("Could not unexport GPIO%d: %s", self.pin, exc)
            return
        logger.info("GPIO%d unexported", self.pin)

    def __repr__(self) -> str:
        return f"GpioIndicator(pin={self.pin}, root={str(self.root)!r})"


class DetachedIndicator:
    """Stand-in used when no indicator device was found.

    Reads are always ``UNKNOWN`` and writes fail, so the sync services keep
    running and account for the missing hardware like any other failure.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def read(self) -> IndicatorReading:
        return IndicatorReading.UNKNOWN

    def write(self, state: bool) -> None:
        raise HardwareWriteFailure(f"No indicator available: {self.reason}")

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"DetachedIndicator({self.reason!r})"


__all__ = [
    "DetachedIndicator",
    "GpioIndicator",
    "HardwareUnavailable",
    "HardwareWriteFailure",
    "Indicator",
    "IndicatorReading",
    "SysfsIndicator",
]
