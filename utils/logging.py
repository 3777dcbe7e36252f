"""
Logging Utility - Structured JSON Logging

Provides centralized, structured logging configuration for all backend components.
Supports JSON format for production and human-readable format for development.

Usage:
    from utils.logging import setup_logging

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger = logging.getLogger(__name__)
    logger.info("Batch committed", extra={"cursor": 1100, "records": 42})
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes present on every LogRecord; anything else came in through `extra`.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render a record and its `extra` fields as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return orjson.dumps(payload, default=str).decode("utf-8")


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
) -> None:
    """Configure application-wide logging on stdout.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ('json' or 'text')
    """
    handler = logging.StreamHandler(sys.stdout)
    if format_type == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )
