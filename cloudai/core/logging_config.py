"""Structured logging. No secrets in log output."""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import Any

# Secret shapes that can reach a relay log record: the Authorization header
# value, a provider key, or a credential query parameter in an endpoint URL
_SECRET_RE = re.compile(
    r"\bbearer\s+\S+|\bsk-[A-Za-z0-9_\-]{8,}|\b(api[_-]?key|access_token|token)=[^&\s]+",
    re.IGNORECASE,
)
_SECRET_FIELDS = frozenset(("api_key", "authorization", "headers"))

_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
        "asctime",
    )
)


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: "[REDACTED]" if isinstance(k, str) and k.lower() in _SECRET_FIELDS else _redact(v)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [_redact(v) for v in obj]
    if isinstance(obj, str) and _SECRET_RE.search(obj):
        return "[REDACTED]"
    return obj


class StructuredFormatter(logging.Formatter):
    """JSON or key=value format; redacts sensitive values in extra fields."""

    def __init__(self, use_json: bool = True) -> None:
        super().__init__()
        self.use_json = use_json

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_dict[key] = "[REDACTED]" if key.lower() in _SECRET_FIELDS else _redact(value)
        if self.use_json:
            return json.dumps(log_dict, default=str)
        parts = [f"{k}={v!r}" for k, v in log_dict.items()]
        return " ".join(parts)


def setup_logging(level: str = "INFO", use_json: bool = True) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter(use_json=use_json))
        root.addHandler(handler)
