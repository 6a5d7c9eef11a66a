"""Settings loader for capsync peers.

Configuration is resolved as defaults < ``CAPSYNC_*`` environment variables
< explicit overrides (command line flags), then validated by
:class:`capsync.config.schema.RuntimeConfigSchema`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from marshmallow import ValidationError

from ..common import get_default_config, get_env_config
from ..const import (
    DEFAULT_EVENT_QUEUE_LIMIT,
    DEFAULT_GPIO_PIN,
    DEFAULT_GPIO_ROOT,
    DEFAULT_GUARD_MAX_HOLD,
    DEFAULT_LED_NAME_PATTERN,
    DEFAULT_LED_SEARCH_DIR,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MONITOR_INTERVAL,
    DEFAULT_MQTT_CONNECT_ATTEMPTS,
    DEFAULT_MQTT_QOS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SETTLE_WINDOW,
    DEFAULT_STATUS_FILE,
    DEFAULT_STATUS_INTERVAL,
    ROLE_HUB,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for a hub or client peer."""

    role: str
    peer_name: str
    mqtt_host: str
    mqtt_port: int
    mqtt_user: str | None
    mqtt_pass: str | None
    mqtt_tls: bool
    mqtt_cafile: str | None
    mqtt_certfile: str | None
    mqtt_keyfile: str | None
    mqtt_topic: str
    mqtt_tls_insecure: bool = False
    mqtt_qos: int = DEFAULT_MQTT_QOS
    mqtt_connect_attempts: int = DEFAULT_MQTT_CONNECT_ATTEMPTS
    reconnect_delay: int = DEFAULT_RECONNECT_DELAY
    led_path: str | None = None
    led_search_dir: str = DEFAULT_LED_SEARCH_DIR
    led_name_pattern: str = DEFAULT_LED_NAME_PATTERN
    gpio_root: str = DEFAULT_GPIO_ROOT
    gpio_pin: int = DEFAULT_GPIO_PIN
    poll_interval: float = DEFAULT_POLL_INTERVAL
    settle_window: float = DEFAULT_SETTLE_WINDOW
    guard_max_hold: float = DEFAULT_GUARD_MAX_HOLD
    monitor_interval: float = DEFAULT_MONITOR_INTERVAL
    event_queue_limit: int = DEFAULT_EVENT_QUEUE_LIMIT
    console_input: bool = False
    status_interval: int = DEFAULT_STATUS_INTERVAL
    status_file: str = DEFAULT_STATUS_FILE
    metrics_enabled: bool = DEFAULT_METRICS_ENABLED
    metrics_host: str = DEFAULT_METRICS_HOST
    metrics_port: int = DEFAULT_METRICS_PORT
    debug_logging: bool = False
    log_json: bool = False
    log_syslog: bool = False

    @property
    def tls_enabled(self) -> bool:
        return self.mqtt_tls

    @property
    def is_hub(self) -> bool:
        return self.role == ROLE_HUB

    def __post_init__(self) -> None:
        if not self.mqtt_tls:
            logger.debug(
                "MQTT TLS is disabled; indicator traffic is sent in plaintext."
            )
        elif self.mqtt_tls_insecure:
            logger.warning(
                "MQTT TLS hostname verification is disabled (mqtt_tls_insecure=1); "
                "use only with known/self-hosted brokers."
            )


def load_runtime_config(
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> RuntimeConfig:
    """Resolve and validate the runtime configuration.

    Raises:
        ValueError: if any resolved value fails schema validation.
    """
    from .schema import RuntimeConfigSchema

    raw: dict[str, object] = dict(get_default_config())
    raw.update(get_env_config(environ))
    if overrides:
        raw.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return RuntimeConfigSchema().load(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc.messages}") from exc
