"""JSON logging for the bridge, delivered to syslog or stderr.

Records are rendered as one compact JSON object per line. Context passed
through ``extra=`` is kept under ``ctx``; radio addresses are shown as hex
and payload bytes as ``{"len": ..., "hex": ...}`` so binary frames survive
intact.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from ..const import UINT8_MAX
from .model import BridgeConfig

LOG_STREAM_ENV = "RHBRIDGE_LOG_STREAM"
SYSLOG_SOCKETS: tuple[Path, ...] = (Path("/dev/log"), Path("/var/run/log"))
SYSLOG_IDENT = "rhbridge "

# transitions reports every state change at INFO, i.e. once per worker cycle.
CHATTY_LOGGERS = ("transitions",)

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _context_value(key: str, value: Any) -> Any:
    if isinstance(value, bool) or value is None or isinstance(value, (str, float)):
        return value
    if isinstance(value, int):
        if key.endswith("_address") and 0 <= value <= UINT8_MAX:
            return f"0x{value:02X}"
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return {"len": len(data), "hex": data.hex()}
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    PREFIX = "rhbridge."

    def __init__(self) -> None:
        super().__init__()
        self._encoder = msgspec.json.Encoder()

    def format(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix(self.PREFIX)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": name,
            "message": record.getMessage(),
        }
        # Worker cycles run on executor threads.
        if record.threadName and record.threadName != "MainThread":
            payload["thread"] = record.threadName

        context = {
            key: _context_value(key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if context:
            payload["ctx"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exception"] = record.exc_text

        return self._encoder.encode(payload).decode("utf-8")


def _syslog_socket() -> Path | None:
    return next((path for path in SYSLOG_SOCKETS if path.exists()), None)


def _build_handler() -> Handler:
    socket_path = None if os.environ.get(LOG_STREAM_ENV) else _syslog_socket()
    if socket_path is None:
        return logging.StreamHandler(sys.stderr)

    handler = SysLogHandler(address=str(socket_path), facility=SysLogHandler.LOG_DAEMON)
    handler.ident = SYSLOG_IDENT
    return handler


def logging_config(debug: bool) -> dict[str, Any]:
    """Build the ``dictConfig`` mapping for the given verbosity."""
    level_name = "DEBUG" if debug else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": StructuredLogFormatter},
        },
        "handlers": {
            "bridge": {
                "()": _build_handler,
                "level": level_name,
                "formatter": "json",
            }
        },
        "loggers": {name: {"level": level_name if debug else "WARNING"} for name in CHATTY_LOGGERS},
        "root": {
            "level": level_name,
            "handlers": ["bridge"],
        },
    }


def configure_logging(config: BridgeConfig) -> None:
    """Install the JSON handler on the root logger."""
    dictConfig(logging_config(config.debug_logging))
    logging.getLogger("rhbridge").debug("Logging configured (debug=%s)", config.debug_logging)


__all__ = ["StructuredLogFormatter", "configure_logging", "logging_config"]
