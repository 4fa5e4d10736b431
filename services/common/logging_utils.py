"""Shared logging utilities for services.

This module configures the standard ``logging`` module with a consistent
format and log level across services. ``json`` output emits one object per
record so that log shippers can index the ``extra=`` fields passed at call
sites; ``text`` output keeps the classic single-line format for local runs.
Individual modules should obtain a logger via ``get_logger(__name__)``.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else came in via ``extra=``.
_RESERVED = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "asctime",
    }
)


class JsonFormatter(logging.Formatter):
    """JSON log formatter with timestamp, static bindings and extra fields."""

    def __init__(self, bindings: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self.bindings: Dict[str, Any] = {
            "pid": os.getpid(),
            "host": socket.gethostname(),
        }
        self.bindings.update(bindings or {})

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "name": record.name,
            "message": record.getMessage(),
        }
        log_record.update(self.bindings)
        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                log_record[key] = value
        if record.exc_info:
            log_record["stack"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def configure_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    bindings: Optional[Mapping[str, Any]] = None,
) -> None:
    """Configure root logging.

    Parameters
    ----------
    level:
        Optional log level name. If not provided, the ``LOG_LEVEL``
        environment variable is consulted and defaults to ``INFO``.
    fmt:
        ``json`` or ``text``. Falls back to ``LOG_FORMAT`` and then ``json``.
    bindings:
        Static fields stamped on every JSON record (app name, environment,
        pod and node names).
    """

    level_name = level or os.getenv("LOG_LEVEL", "INFO")
    log_level = getattr(logging, str(level_name).upper(), logging.INFO)
    fmt_name = (fmt or os.getenv("LOG_FORMAT", "json")).lower()

    handler = logging.StreamHandler(sys.stdout)
    if fmt_name == "json":
        handler.setFormatter(JsonFormatter(bindings))
    else:
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logging.basicConfig(level=log_level, handlers=[handler], force=True)


def get_logger(name: str) -> logging.Logger:
    """Return a logger with global configuration applied."""

    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger"]
