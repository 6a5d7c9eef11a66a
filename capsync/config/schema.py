"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

import os
from typing import Any, Dict

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    post_load,
    pre_load,
    validate,
    validates,
    validates_schema,
)

from ..common import parse_bool
from ..const import (
    DEFAULT_GPIO_ROOT,
    DEFAULT_LED_NAME_PATTERN,
    DEFAULT_LED_SEARCH_DIR,
    DEFAULT_METRICS_HOST,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_STATUS_FILE,
    ROLES,
)
from .settings import RuntimeConfig

_OPTIONAL_STRINGS = (
    "mqtt_user",
    "mqtt_pass",
    "mqtt_cafile",
    "mqtt_certfile",
    "mqtt_keyfile",
    "led_path",
)

_BOOL_KEYS = (
    "mqtt_tls",
    "mqtt_tls_insecure",
    "console_input",
    "metrics_enabled",
    "debug",
    "log_json",
    "log_syslog",
)


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for capsync configuration."""

    class Meta:
        unknown = EXCLUDE

    role = fields.Str(required=True, validate=validate.OneOf(ROLES))
    peer_name = fields.Str(load_default="", validate=validate.Length(max=200))

    # MQTT
    mqtt_host = fields.Str(load_default="localhost", validate=validate.Length(min=1))
    mqtt_port = fields.Int(load_default=1883, validate=validate.Range(min=1, max=65535))
    mqtt_user = fields.Str(load_default=None, allow_none=True)
    mqtt_pass = fields.Str(load_default=None, allow_none=True)
    mqtt_tls = fields.Bool(load_default=False)
    mqtt_tls_insecure = fields.Bool(load_default=False)
    mqtt_cafile = fields.Str(load_default=None, allow_none=True)
    mqtt_certfile = fields.Str(load_default=None, allow_none=True)
    mqtt_keyfile = fields.Str(load_default=None, allow_none=True)
    mqtt_topic = fields.Str(load_default=DEFAULT_MQTT_TOPIC, validate=validate.Length(min=1))
    mqtt_qos = fields.Int(load_default=0, validate=validate.OneOf((0, 1, 2)))
    mqtt_connect_attempts = fields.Int(load_default=5, validate=validate.Range(min=1))
    reconnect_delay = fields.Int(load_default=2, validate=validate.Range(min=1))

    # Hardware
    led_path = fields.Str(load_default=None, allow_none=True)
    led_search_dir = fields.Str(load_default=DEFAULT_LED_SEARCH_DIR, validate=validate.Length(min=1))
    led_name_pattern = fields.Str(load_default=DEFAULT_LED_NAME_PATTERN, validate=validate.Length(min=1))
    gpio_root = fields.Str(load_default=DEFAULT_GPIO_ROOT, validate=validate.Length(min=1))
    gpio_pin = fields.Int(load_default=529, validate=validate.Range(min=0))

    # Synchronisation timing
    poll_interval = fields.Float(load_default=0.1, validate=validate.Range(min=0.01))
    settle_window = fields.Float(load_default=0.2, validate=validate.Range(min=0.01))
    guard_max_hold = fields.Float(load_default=1.0, validate=validate.Range(min=0.01))
    monitor_interval = fields.Float(load_default=5.0, validate=validate.Range(min=0.1))
    event_queue_limit = fields.Int(load_default=64, validate=validate.Range(min=1))
    console_input = fields.Bool(load_default=False)

    # Observability
    status_interval = fields.Int(load_default=0, validate=validate.Range(min=0))
    status_file = fields.Str(load_default=DEFAULT_STATUS_FILE, validate=validate.Length(min=1))
    metrics_enabled = fields.Bool(load_default=False)
    metrics_host = fields.Str(load_default=DEFAULT_METRICS_HOST)
    metrics_port = fields.Int(load_default=9140, validate=validate.Range(min=0, max=65535))
    debug_logging = fields.Bool(load_default=False, data_key="debug")
    log_json = fields.Bool(load_default=False)
    log_syslog = fields.Bool(load_default=False)

    @pre_load
    def normalize_raw(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        data = dict(data)
        for key in _OPTIONAL_STRINGS:
            value = data.get(key)
            if isinstance(value, str) and not value.strip():
                data[key] = None
        for key in _BOOL_KEYS:
            if key in data and data[key] is not None:
                data[key] = parse_bool(data[key])
        if isinstance(data.get("peer_name"), str):
            data["peer_name"] = data["peer_name"].strip()
        if isinstance(data.get("role"), str):
            data["role"] = data["role"].strip().lower()
        if "mqtt_topic" in data:
            prefix = str(data["mqtt_topic"])
            segments = [segment for segment in prefix.split("/") if segment]
            # An all-slash prefix normalises to "" and fails Length(min=1).
            data["mqtt_topic"] = "/".join(segments)
        return data

    @validates("peer_name")
    def validate_peer_name(self, value: str, **kwargs: Any) -> None:
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ValidationError("peer_name must be encodable as UTF-8") from exc

    @validates_schema
    def validate_timing(self, data: Dict[str, Any], **kwargs: Any) -> None:
        poll = data["poll_interval"]
        settle = data["settle_window"]
        if settle <= poll:
            raise ValidationError(
                "settle_window must be greater than poll_interval so a settled "
                "remote update is sampled before the guard is released",
                field_name="settle_window",
            )
        if data["guard_max_hold"] < settle:
            raise ValidationError(
                "guard_max_hold must be greater than or equal to settle_window",
                field_name="guard_max_hold",
            )

    @validates_schema
    def validate_tls_files(self, data: Dict[str, Any], **kwargs: Any) -> None:
        certfile = data.get("mqtt_certfile")
        keyfile = data.get("mqtt_keyfile")
        if bool(certfile) != bool(keyfile):
            raise ValidationError(
                "Both mqtt_certfile and mqtt_keyfile must be provided for mTLS.",
                field_name="mqtt_certfile",
            )

    @staticmethod
    def _normalize_path(value: str) -> str:
        candidate = (value or "").strip()
        expanded = os.path.expanduser(candidate)
        return os.path.abspath(expanded)

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        data["status_file"] = self._normalize_path(data["status_file"])
        if data.get("led_path"):
            data["led_path"] = self._normalize_path(data["led_path"])
        return RuntimeConfig(**data)
