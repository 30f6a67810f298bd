"""JSON log lines for the auth service, tagged with the request correlation id.

Only whitelisted ``extra`` attributes reach the output. Secrets such as
passwords, passcodes and tokens are never whitelisted, and a record that
carries one anyway is masked before it is serialized.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, TextIO

CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="")

EXTRA_FIELDS = (
    "user_id",
    "event_type",
    "event_id",
    "error_kind",
    "error",
    "path",
    "method",
    "status_code",
)
SECRET_FIELDS = frozenset(
    {"password", "new_password", "passcode", "access_token", "refresh_token", "secret_key"}
)
REDACTED = "[redacted]"


class JsonLogFormatter(logging.Formatter):
    """Serialize log records into compact JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": CORRELATION_ID_CTX.get(),
        }

        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value not in (None, ""):
                payload[key] = value
        for key in SECRET_FIELDS:
            if hasattr(record, key):
                payload[key] = REDACTED

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", *, stream: TextIO | None = None) -> None:
    """Route the root logger to one JSON handler at ``level``."""
    normalized_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(normalized_level)
    root_logger.addHandler(handler)


def set_correlation_id(correlation_id: str) -> None:
    CORRELATION_ID_CTX.set(correlation_id)
