"""Logging helpers for the capsync daemon."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .settings import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")
SYSLOG_SOCKET_FALLBACK = Path("/var/run/log")
TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_RESERVED_LOG_KEYS = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


def _serialise_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        # Hex keeps wire payloads readable without guessing an encoding.
        return f"[{' '.join(f'{b:02X}' for b in value)}]"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Emit JSON per log line while trimming the shared prefix."""

    PREFIX = "capsync."

    def format(self, record: logging.LogRecord) -> str:
        logger_name = record.name
        if logger_name.startswith(self.PREFIX):
            logger_name = logger_name[len(self.PREFIX) :]

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": logger_name,
            "message": record.getMessage(),
        }

        extras = {
            key: _serialise_value(value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_KEYS and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _build_syslog_handler() -> Handler:
    for candidate in (SYSLOG_SOCKET, SYSLOG_SOCKET_FALLBACK):
        if candidate.exists():
            handler = SysLogHandler(
                address=str(candidate),
                facility=SysLogHandler.LOG_DAEMON,
            )
            handler.ident = "capsync "
            return handler
    return logging.StreamHandler()


def _build_stream_handler() -> Handler:
    return logging.StreamHandler()


def configure_logging(config: RuntimeConfig) -> None:
    """Configure root logging based on runtime settings."""

    level_name = "DEBUG" if config.debug_logging else "INFO"
    formatter = "structured" if config.log_json else "text"
    factory = _build_syslog_handler if config.log_syslog else _build_stream_handler

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "capsync.config.logging.StructuredLogFormatter",
                },
                "text": {
                    "format": TEXT_FORMAT,
                },
            },
            "handlers": {
                "capsync": {
                    "()": factory,
                    "level": level_name,
                    "formatter": formatter,
                }
            },
            "root": {
                "level": level_name,
                "handlers": ["capsync"],
            },
        }
    )

    logging.getLogger("capsync").info("Logging configured at level %s", level_name)
