"""Pytest configuration for capsync tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from capsync.config.settings import RuntimeConfig  # noqa: E402
from capsync.const import DEFAULT_MQTT_PORT, DEFAULT_MQTT_TOPIC, ROLE_CLIENT  # noqa: E402
from capsync.state.context import RuntimeState, create_runtime_state  # noqa: E402

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Fallback asyncio runner when pytest-asyncio is unavailable."""
    if _HAS_PYTEST_ASYNCIO:
        return None
    if "asyncio" not in pyfuncitem.keywords:
        return None
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
        loop.run_until_complete(test_function(**kwargs))
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        except (RuntimeError, ValueError):
            pass
        loop.close()
        asyncio.set_event_loop(None)
    return True


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def logging_mock_level_fix():
    """Ensure all handlers have a numeric level to avoid comparisons with MagicMock."""
    original_handlers = []
    loggers = [logging.getLogger(name) for name in logging.root.manager.loggerDict]
    loggers.append(logging.getLogger())

    for logger in loggers:
        for handler in getattr(logger, "handlers", []):
            if isinstance(handler.level, MagicMock):
                original_handlers.append((handler, handler.level))
                handler.level = logging.NOTSET

    yield

    for handler, level in original_handlers:
        handler.level = level


@pytest.fixture()
def runtime_config(tmp_path: Path) -> RuntimeConfig:
    return RuntimeConfig(
        role=ROLE_CLIENT,
        peer_name="A",
        mqtt_host="localhost",
        mqtt_port=DEFAULT_MQTT_PORT,
        mqtt_user=None,
        mqtt_pass=None,
        mqtt_tls=False,
        mqtt_cafile=None,
        mqtt_certfile=None,
        mqtt_keyfile=None,
        mqtt_topic=DEFAULT_MQTT_TOPIC,
        mqtt_connect_attempts=2,
        reconnect_delay=1,
        poll_interval=0.01,
        settle_window=0.05,
        guard_max_hold=0.5,
        monitor_interval=0.05,
        event_queue_limit=8,
        status_file=str(tmp_path / "status.json"),
    )


@pytest.fixture()
def runtime_state(runtime_config: RuntimeConfig) -> RuntimeState:
    return create_runtime_state(runtime_config)
