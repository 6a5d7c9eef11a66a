"""Utility helpers shared across capsync packages."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Final

from .const import (
    DEFAULT_EVENT_QUEUE_LIMIT,
    DEFAULT_GPIO_PIN,
    DEFAULT_GPIO_ROOT,
    DEFAULT_GUARD_MAX_HOLD,
    DEFAULT_LED_NAME_PATTERN,
    DEFAULT_LED_SEARCH_DIR,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MONITOR_INTERVAL,
    DEFAULT_MQTT_CONNECT_ATTEMPTS,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_QOS,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SETTLE_WINDOW,
    DEFAULT_STATUS_FILE,
    DEFAULT_STATUS_INTERVAL,
    ENV_PREFIX,
    ROLE_CLIENT,
)

logger = logging.getLogger(__name__)

_TRUE_STRINGS: Final[frozenset[str]] = frozenset(
    {"1", "yes", "on", "true", "enable", "enabled"}
)


def parse_bool(value: object) -> bool:
    """Parse a boolean value safely from various types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if value is None:
        return False
    s = str(value).lower().strip()
    return s in _TRUE_STRINGS


def get_default_config() -> dict[str, str]:
    """Provide default capsync configuration values."""
    return {
        "role": ROLE_CLIENT,
        "peer_name": "",
        "mqtt_host": DEFAULT_MQTT_HOST,
        "mqtt_port": str(DEFAULT_MQTT_PORT),
        "mqtt_user": "",
        "mqtt_pass": "",
        "mqtt_tls": "0",
        "mqtt_tls_insecure": "0",
        "mqtt_cafile": "",
        "mqtt_certfile": "",
        "mqtt_keyfile": "",
        "mqtt_topic": DEFAULT_MQTT_TOPIC,
        "mqtt_qos": str(DEFAULT_MQTT_QOS),
        "mqtt_connect_attempts": str(DEFAULT_MQTT_CONNECT_ATTEMPTS),
        "reconnect_delay": str(DEFAULT_RECONNECT_DELAY),
        "led_path": "",
        "led_search_dir": DEFAULT_LED_SEARCH_DIR,
        "led_name_pattern": DEFAULT_LED_NAME_PATTERN,
        "gpio_root": DEFAULT_GPIO_ROOT,
        "gpio_pin": str(DEFAULT_GPIO_PIN),
        "poll_interval": str(DEFAULT_POLL_INTERVAL),
        "settle_window": str(DEFAULT_SETTLE_WINDOW),
        "guard_max_hold": str(DEFAULT_GUARD_MAX_HOLD),
        "monitor_interval": str(DEFAULT_MONITOR_INTERVAL),
        "event_queue_limit": str(DEFAULT_EVENT_QUEUE_LIMIT),
        "console_input": "0",
        "status_interval": str(DEFAULT_STATUS_INTERVAL),
        "status_file": DEFAULT_STATUS_FILE,
        "metrics_enabled": "0",
        "metrics_host": DEFAULT_METRICS_HOST,
        "metrics_port": str(DEFAULT_METRICS_PORT),
        "debug": "0",
        "log_json": "0",
        "log_syslog": "0",
    }


def get_env_config(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect ``CAPSYNC_*`` overrides for known configuration keys.

    ``CAPSYNC_MQTT_HOST=broker`` overrides ``mqtt_host``. Unknown variables
    are ignored so unrelated ``CAPSYNC_`` names never break startup.
    """
    source = os.environ if environ is None else environ
    known = get_default_config()
    overrides: dict[str, str] = {}
    for name, value in source.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if key in known:
            overrides[key] = value
    return overrides


def log_hexdump(
    logger_instance: logging.Logger, level: int, label: str, data: bytes
) -> None:
    """Log binary data in hexadecimal format.

    Format: [LABEL] LEN=10 HEX=00 01 02 ...
    """
    if not logger_instance.isEnabledFor(level):
        return

    hex_str = " ".join(f"{b:02X}" for b in data)
    logger_instance.log(level, "[%s] LEN=%d HEX=%s", label, len(data), hex_str)


__all__: Final[tuple[str, ...]] = (
    "get_default_config",
    "get_env_config",
    "log_hexdump",
    "parse_bool",
)
