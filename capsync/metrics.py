"""Prometheus exporter for capsync runtime state."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import (
    CounterMetricFamily,
    GaugeMetricFamily,
    InfoMetricFamily,
    Metric,
)
from prometheus_client.registry import Collector

from . import __version__
from .state.context import RuntimeState

logger = logging.getLogger("capsync.metrics")

_NAMESPACE = "capsync"
_METRICS_PATHS = frozenset({"/", "/metrics"})
_REASONS = {200: "OK", 400: "Bad Request", 404: "Not Found", 405: "Method Not Allowed"}


class _SyncStateCollector(Collector):
    """Builds metric families from a live RuntimeState on every scrape."""

    def __init__(self, state: RuntimeState) -> None:
        self._state = state

    def collect(self) -> Iterator[Metric]:
        state = self._state

        yield InfoMetricFamily(
            _NAMESPACE,
            "capsync peer identity",
            value={
                "role": state.role,
                "peer_name": state.peer_name,
                "topic_prefix": state.mqtt_topic_prefix,
                "version": __version__,
            },
        )

        yield GaugeMetricFamily(
            f"{_NAMESPACE}_hub_connected",
            "1 while the hub is reachable",
            value=1.0 if state.is_connected else 0.0,
        )
        if state.indicator_state is None:
            indicator = -1.0
        else:
            indicator = 1.0 if state.indicator_state else 0.0
        yield GaugeMetricFamily(
            f"{_NAMESPACE}_indicator_state",
            "Indicator value: 1 on, 0 off, -1 not yet known",
            value=indicator,
        )
        yield GaugeMetricFamily(
            f"{_NAMESPACE}_last_change_timestamp_seconds",
            "Unix time of the last indicator change",
            value=state.last_change_unix,
        )
        yield GaugeMetricFamily(
            f"{_NAMESPACE}_uptime_seconds",
            "Seconds since the peer started",
            value=max(0.0, time.time() - state.started_unix),
        )

        for name, count in state.stats.as_dict().items():
            yield CounterMetricFamily(
                f"{_NAMESPACE}_sync_{name}",
                f"Sync protocol counter: {name.replace('_', ' ')}",
                value=float(count),
            )

        restarts = CounterMetricFamily(
            f"{_NAMESPACE}_supervisor_restarts",
            "Supervised task restarts",
            labels=("task",),
        )
        backoff = GaugeMetricFamily(
            f"{_NAMESPACE}_supervisor_backoff_seconds",
            "Current restart backoff of a supervised task",
            labels=("task",),
        )
        fatal = GaugeMetricFamily(
            f"{_NAMESPACE}_supervisor_fatal",
            "1 when a supervised task gave up",
            labels=("task",),
        )
        for task, stats in state.supervisor_stats.items():
            restarts.add_metric((task,), float(stats.restarts))
            backoff.add_metric((task,), stats.backoff_seconds)
            fatal.add_metric((task,), 1.0 if stats.fatal else 0.0)
        yield restarts
        yield backoff
        yield fatal


class PrometheusExporter:
    """Serves ``GET /metrics`` on a small asyncio HTTP listener."""

    def __init__(self, state: RuntimeState, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._registry = CollectorRegistry(auto_describe=False)
        self._registry.register(_SyncStateCollector(state))

    @property
    def port(self) -> int:
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._serve, self._host, self._port)
        logger.info("Prometheus exporter listening on %s:%d", self._host, self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        await server.wait_closed()
        logger.info("Prometheus exporter stopped")

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    def render(self) -> bytes:
        return generate_latest(self._registry)

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            status, body, content_type = await self._respond(reader)
            head = (
                f"HTTP/1.1 {status} {_REASONS.get(status, 'Error')}\r\n"
                f"Content-Type: {content_type}\r\n"
                f"Content-Length: {len(body)}\r\n"
                "Connection: close\r\n\r\n"
            )
            writer.write(head.encode("ascii") + body)
            await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as exc:
            logger.debug("Metrics client went away: %s", exc)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _respond(self, reader: asyncio.StreamReader) -> tuple[int, bytes, str]:
        request = await reader.readuntil(b"\r\n\r\n")
        request_line = request.split(b"\r\n", 1)[0].decode("latin-1")
        try:
            method, target, _ = request_line.split(" ", 2)
        except ValueError:
            return 400, b"", "text/plain"
        if method != "GET":
            return 405, b"", "text/plain"
        if target.split("?", 1)[0] not in _METRICS_PATHS:
            return 404, b"", "text/plain"
        return 200, self.render(), CONTENT_TYPE_LATEST


__all__ = ["PrometheusExporter"]
