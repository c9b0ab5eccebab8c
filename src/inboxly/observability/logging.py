"""JSON log lines for the inbox service.

Every line carries the correlation id of the current request and the
``extra_fields`` dict passed by the caller (already redacted through
safe_log_context). Arabic placeholder text is kept readable (no \\u escapes).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

SERVICE_NAME = "inboxly"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlationId"] = correlation_id

        if record.exc_info:
            entry["errorType"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(getattr(record, "extra_fields", None) or {})
        return json.dumps(entry, ensure_ascii=False, default=str)


def _level_from_env() -> int:
    """LOG_LEVEL name (DEBUG shows image URL recovery failures); INFO when unknown."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Logger writing JSON lines to stdout; configured once per name."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_from_env())
        logger.propagate = False
    return logger
