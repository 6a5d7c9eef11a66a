"""Periodic status writer for the capsync daemon."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

import msgspec

from .context import RuntimeState

logger = logging.getLogger("capsync.status")


async def status_writer(state: RuntimeState, interval: int, path: str | Path) -> None:
    """Persist lightweight status information periodically."""

    status_file = Path(path)
    while True:
        try:
            payload: dict[str, Any] = state.build_metrics_snapshot()
            payload["heartbeat_unix"] = time.time()
            write_task = asyncio.create_task(asyncio.to_thread(_write_status_file, status_file, payload))
            try:
                await asyncio.shield(write_task)
            except asyncio.CancelledError:
                await write_task
                raise
        except asyncio.CancelledError:
            logger.info("Status writer task cancelled.")
            raise
        await asyncio.sleep(interval)


def cleanup_status_file(path: str | Path) -> None:
    """Remove the status file if it exists."""

    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        logger.debug("Ignoring error while removing status file.")


def _write_status_file(status_file: Path, payload: dict[str, Any]) -> None:
    status_file.parent.mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile(
        "wb",
        dir=status_file.parent,
        delete=False,
    ) as handle:
        handle.write(msgspec.json.encode(payload))
        temp_name = handle.name
    Path(temp_name).replace(status_file)
