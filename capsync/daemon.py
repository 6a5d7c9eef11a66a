#!/usr/bin/env python3
"""Async orchestrator for capsync hub and client peers.

Architecture:
    main() -> SyncDaemon -> TaskGroup
        ├── mqtt-link (MqttTransport)
        ├── hub-coordinator (hub role)
        ├── sync-engine, indicator-poller, availability-monitor (client role)
        ├── console (optional, client role)
        ├── status-writer (optional)
        └── prometheus-exporter (optional)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Mapping, Sequence
from typing import NoReturn

import uvloop

from . import __version__
from .config.logging import configure_logging
from .config.settings import RuntimeConfig, load_runtime_config
from .const import (
    ROLE_CLIENT,
    ROLE_HUB,
    SUPERVISOR_STATUS_MAX_BACKOFF,
    SUPERVISOR_STATUS_RESTART_INTERVAL,
)
from .hardware import DetachedIndicator, GpioIndicator, HardwareUnavailable, Indicator, SysfsIndicator
from .metrics import PrometheusExporter
from .services.console import ConsoleInput
from .services.engine import PeerSyncEngine
from .services.hub import HubCoordinator
from .services.monitor import AvailabilityMonitor
from .services.poller import IndicatorPoller
from .services.task_supervisor import SupervisedTaskSpec, supervise_task
from .state.context import create_runtime_state
from .state.status import cleanup_status_file, status_writer
from .transport.base import SyncTransport, TransportStartupError
from .transport.mqtt import MqttTransport

logger = logging.getLogger("capsync")

HUB_IDENTITY = "hub"


class _StopRequested(Exception):
    pass


def build_indicator(config: RuntimeConfig) -> Indicator:
    """Select the hardware adapter for the configured role.

    A client without a discoverable LED keeps running on a
    :class:`DetachedIndicator`.
    """
    if config.is_hub:
        return GpioIndicator(config.gpio_pin, config.gpio_root)
    if config.led_path:
        return SysfsIndicator(config.led_path)
    try:
        return SysfsIndicator.discover(config.led_search_dir, config.led_name_pattern)
    except HardwareUnavailable as exc:
        logger.warning("Could not find CapsLock LED path, continuing without it: %s", exc)
        return DetachedIndicator(str(exc))


class SyncDaemon:
    """Wires transport, hardware and services for one peer process."""

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        transport: SyncTransport | None = None,
        indicator: Indicator | None = None,
    ) -> None:
        self.config = config
        self.state = create_runtime_state(config)
        self.transport: SyncTransport = transport or MqttTransport(config)
        self.indicator = indicator or build_indicator(config)
        self._stop_event = asyncio.Event()

        self.hub: HubCoordinator | None = None
        self.engine: PeerSyncEngine | None = None
        self.poller: IndicatorPoller | None = None
        self.monitor = AvailabilityMonitor(self.state, config.monitor_interval)
        self.console: ConsoleInput | None = None
        self.exporter: PrometheusExporter | None = None

        if config.is_hub:
            self.hub = HubCoordinator(config, self.state, self.transport, self.indicator)
        else:
            self.engine = PeerSyncEngine(config, self.state, self.transport, self.indicator)
            self.poller = IndicatorPoller(
                self.indicator,
                self.engine.guard,
                self.engine.submit_local_edge,
                config.poll_interval,
            )
            if config.console_input:
                self.console = ConsoleInput(
                    self.indicator,
                    self.request_stop,
                    wait_ready=self.engine.wait_connected,
                )

        if config.console_input and config.is_hub:
            logger.warning("Console input is only available on clients; ignoring.")

    def request_stop(self) -> None:
        self._stop_event.set()

    async def _run_transport(self) -> None:
        await self.transport.run()

    async def _run_poller(self) -> None:
        assert self.engine is not None and self.poller is not None
        await self.engine.wait_connected()
        await self.poller.run()

    async def _run_status_writer(self) -> None:
        await status_writer(self.state, self.config.status_interval, self.config.status_file)

    def _setup_supervision(self) -> list[SupervisedTaskSpec]:
        """Prepare the list of tasks to be supervised."""
        specs: list[SupervisedTaskSpec] = [
            SupervisedTaskSpec(
                name="mqtt-link",
                factory=self._run_transport,
                fatal_exceptions=(TransportStartupError,),
            ),
            SupervisedTaskSpec(
                name="availability-monitor",
                factory=self.monitor.run,
            ),
        ]

        if self.hub is not None:
            specs.append(SupervisedTaskSpec(name="hub-coordinator", factory=self.hub.run))

        if self.engine is not None:
            specs.append(SupervisedTaskSpec(name="sync-engine", factory=self.engine.run))
            specs.append(SupervisedTaskSpec(name="indicator-poller", factory=self._run_poller))

        if self.console is not None:
            specs.append(SupervisedTaskSpec(name="console", factory=self.console.run, max_restarts=0))

        if self.config.status_interval > 0:
            specs.append(
                SupervisedTaskSpec(
                    name="status-writer",
                    factory=self._run_status_writer,
                    max_restarts=5,
                    restart_interval=SUPERVISOR_STATUS_RESTART_INTERVAL,
                    max_backoff=SUPERVISOR_STATUS_MAX_BACKOFF,
                )
            )

        if self.config.metrics_enabled:
            self.exporter = PrometheusExporter(
                self.state,
                self.config.metrics_host,
                self.config.metrics_port,
            )
            specs.append(
                SupervisedTaskSpec(
                    name="prometheus-exporter",
                    factory=self.exporter.run,
                    max_restarts=5,
                    restart_interval=SUPERVISOR_STATUS_RESTART_INTERVAL,
                )
            )

        return specs

    async def _wait_for_stop(self) -> None:
        await self._stop_event.wait()
        raise _StopRequested()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received signal %s; stopping...", sig.name)
        self.request_stop()

    async def run(self, *, install_signal_handlers: bool = True) -> None:
        """Main async entry point; returns after a requested stop."""
        loop = asyncio.get_running_loop()
        if install_signal_handlers:
            self._install_signal_handlers(loop)

        if isinstance(self.indicator, GpioIndicator):
            await asyncio.to_thread(self.indicator.setup)

        supervised_tasks = self._setup_supervision()
        try:
            async with asyncio.TaskGroup() as task_group:
                for spec in supervised_tasks:
                    task_group.create_task(supervise_task(spec, state=self.state))
                task_group.create_task(self._wait_for_stop())
        except* _StopRequested:
            logger.info("Stop requested; shutting down.")
        finally:
            if install_signal_handlers:
                self._remove_signal_handlers(loop)
            await asyncio.to_thread(self.indicator.close)
            if self.config.status_interval > 0:
                cleanup_status_file(self.config.status_file)
            logger.info("capsync %s stopped.", self.config.role)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="capsync",
        description="Keep CapsLock indicators in sync across machines over MQTT.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("role", choices=(ROLE_HUB, ROLE_CLIENT), help="peer role")
    parser.add_argument("--name", dest="peer_name", help="client identity (prompted when omitted)")
    parser.add_argument("--host", dest="mqtt_host", help="MQTT broker host")
    parser.add_argument("--port", dest="mqtt_port", type=int, help="MQTT broker port")
    parser.add_argument("--topic", dest="mqtt_topic", help="MQTT topic prefix")
    parser.add_argument("--led-path", dest="led_path", help="CapsLock LED brightness file")
    parser.add_argument("--gpio-pin", dest="gpio_pin", type=int, help="hub LED GPIO number")
    parser.add_argument(
        "--console",
        dest="console_input",
        action="store_const",
        const=True,
        help="read 1/0/q commands from stdin",
    )
    parser.add_argument(
        "--debug",
        action="store_const",
        const=True,
        help="enable debug logging",
    )
    return parser


def prompt_identity() -> str:
    try:
        return input("Enter client name: ").strip()
    except EOFError:
        return ""


def resolve_config(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> RuntimeConfig:
    """Parse the command line and load the validated configuration.

    Raises:
        ValueError: invalid configuration or a client without identity.
    """
    args = build_parser().parse_args(argv)
    overrides = {key: value for key, value in vars(args).items() if value is not None}
    config = load_runtime_config(overrides, environ)

    if config.is_hub:
        if not config.peer_name:
            config.peer_name = HUB_IDENTITY
        return config

    if not config.peer_name:
        # The prompted name goes through the same schema checks as --name.
        overrides["peer_name"] = prompt_identity()
        config = load_runtime_config(overrides, environ)
    if not config.peer_name:
        raise ValueError("A client name is required (--name or CAPSYNC_PEER_NAME).")
    return config


def main(argv: Sequence[str] | None = None) -> NoReturn:  # pragma: no cover (Entry point wrapper)
    try:
        config = resolve_config(argv)
    except ValueError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.critical("%s", exc)
        sys.exit(1)

    configure_logging(config)
    logger.info(
        "Starting capsync %s '%s'. MQTT: %s:%d topic=%s",
        config.role,
        config.peer_name,
        config.mqtt_host,
        config.mqtt_port,
        config.mqtt_topic,
    )

    try:
        daemon = SyncDaemon(config)
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except RuntimeError as exc:
        logger.critical("Startup aborted due to runtime error: %s", exc)
        sys.exit(1)
    except ExceptionGroup as exc_group:
        for group_exc in exc_group.exceptions:
            logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
