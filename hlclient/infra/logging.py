"""Logging configuration helpers."""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

# A raw secp256k1 private key: 64 hex digits, optionally 0x-prefixed.
_PRIVATE_KEY_RE = re.compile(r"\b(0x)?[0-9a-fA-F]{64}\b")


class SecretMaskFilter(logging.Filter):
    """Masks anything that looks like a private key before it is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = _PRIVATE_KEY_RE.sub("***MASKED***", message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


class JsonFormatter(logging.Formatter):
    """Emit structured JSON logs to stdout for downstream parsing."""

    _standard_attrs = {
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
    }

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 - logging interface name
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info

        extras = {key: value for key, value in record.__dict__.items() if key not in self._standard_attrs}
        payload.update(extras)
        return json.dumps(payload, default=str)


def configure_logging(default_level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Configure the root logger using environment overrides.

    ``HLCLIENT_LOG_LEVEL`` wins over ``LOG_LEVEL``, which wins over
    ``default_level``.
    """

    level_name = os.getenv("HLCLIENT_LOG_LEVEL") or os.getenv("LOG_LEVEL", default_level)
    level = getattr(logging, level_name.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(SecretMaskFilter())
    root.addHandler(handler)

    # websockets logs every frame at DEBUG; keep it at INFO unless asked otherwise.
    if level < logging.INFO:
        logging.getLogger("websockets").setLevel(logging.INFO)
