"""Shared constants for capsync components."""

from __future__ import annotations

from ssl import TLSVersion
from typing import Final

# Roles
ROLE_HUB: Final[str] = "hub"
ROLE_CLIENT: Final[str] = "client"
ROLES: Final[tuple[str, ...]] = (ROLE_HUB, ROLE_CLIENT)

# Wire protocol
STATE_BYTE_ON: Final[int] = 0x01
STATE_BYTE_OFF: Final[int] = 0x00
UNKNOWN_ORIGIN: Final[str] = "Unknown"

# Hub availability payloads (retained)
AVAILABILITY_ONLINE: Final[bytes] = b"online"
AVAILABILITY_OFFLINE: Final[bytes] = b"offline"

# MQTT
DEFAULT_MQTT_HOST: Final[str] = "localhost"
DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_TOPIC: Final[str] = "capsync"
DEFAULT_MQTT_QOS: Final[int] = 0
DEFAULT_MQTT_CONNECT_ATTEMPTS: Final[int] = 5
DEFAULT_RECONNECT_DELAY: Final[int] = 2
MQTT_RECONNECT_MAX_DELAY: Final[float] = 60.0
MQTT_TLS_MIN_VERSION: Final[TLSVersion] = TLSVersion.TLSv1_2

# Hardware
DEFAULT_LED_SEARCH_DIR: Final[str] = "/sys/class/leds"
DEFAULT_LED_NAME_PATTERN: Final[str] = "capslock"
DEFAULT_GPIO_ROOT: Final[str] = "/sys/class/gpio"
DEFAULT_GPIO_PIN: Final[int] = 529
GPIO_EXPORT_SETTLE_SECONDS: Final[float] = 0.1

# Synchronisation timing
DEFAULT_POLL_INTERVAL: Final[float] = 0.1
DEFAULT_SETTLE_WINDOW: Final[float] = 0.2
DEFAULT_GUARD_MAX_HOLD: Final[float] = 1.0
DEFAULT_MONITOR_INTERVAL: Final[float] = 5.0
DEFAULT_EVENT_QUEUE_LIMIT: Final[int] = 64

# Observability
DEFAULT_STATUS_INTERVAL: Final[int] = 0
DEFAULT_STATUS_FILE: Final[str] = "/tmp/capsync_status.json"
DEFAULT_METRICS_ENABLED: Final[bool] = False
DEFAULT_METRICS_HOST: Final[str] = "127.0.0.1"
DEFAULT_METRICS_PORT: Final[int] = 9140

# Supervision
SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 0.5
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 30.0
SUPERVISOR_DEFAULT_RESTART_INTERVAL: Final[float] = 60.0
SUPERVISOR_MIN_RESTART_WINDOW: Final[float] = 10.0
SUPERVISOR_STATUS_RESTART_INTERVAL: Final[float] = 120.0
SUPERVISOR_STATUS_MAX_BACKOFF: Final[float] = 10.0

ENV_PREFIX: Final[str] = "CAPSYNC_"

__all__ = [
    "AVAILABILITY_OFFLINE",
    "AVAILABILITY_ONLINE",
    "DEFAULT_EVENT_QUEUE_LIMIT",
    "DEFAULT_GPIO_PIN",
    "DEFAULT_GPIO_ROOT",
    "DEFAULT_GUARD_MAX_HOLD",
    "DEFAULT_LED_NAME_PATTERN",
    "DEFAULT_LED_SEARCH_DIR",
    "DEFAULT_METRICS_ENABLED",
    "DEFAULT_METRICS_HOST",
    "DEFAULT_METRICS_PORT",
    "DEFAULT_MONITOR_INTERVAL",
    "DEFAULT_MQTT_CONNECT_ATTEMPTS",
    "DEFAULT_MQTT_HOST",
    "DEFAULT_MQTT_PORT",
    "DEFAULT_MQTT_QOS",
    "DEFAULT_MQTT_TOPIC",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_RECONNECT_DELAY",
    "DEFAULT_SETTLE_WINDOW",
    "DEFAULT_STATUS_FILE",
    "DEFAULT_STATUS_INTERVAL",
    "ENV_PREFIX",
    "GPIO_EXPORT_SETTLE_SECONDS",
    "MQTT_RECONNECT_MAX_DELAY",
    "MQTT_TLS_MIN_VERSION",
    "ROLES",
    "ROLE_CLIENT",
    "ROLE_HUB",
    "STATE_BYTE_OFF",
    "STATE_BYTE_ON",
    "SUPERVISOR_DEFAULT_MAX_BACKOFF",
    "SUPERVISOR_DEFAULT_MIN_BACKOFF",
    "SUPERVISOR_DEFAULT_RESTART_INTERVAL",
    "SUPERVISOR_MIN_RESTART_WINDOW",
    "SUPERVISOR_STATUS_MAX_BACKOFF",
    "SUPERVISOR_STATUS_RESTART_INTERVAL",
    "UNKNOWN_ORIGIN",
]
