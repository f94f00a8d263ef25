"""ECOMMIND — Structured JSON Logging."""

import logging
import json
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any

from ecommind.config import settings

# Extra fields copied from the LogRecord into the JSON line
EXTRA_FIELDS = (
    "company_id",
    "source",
    "resource",
    "etl_run_id",
    "vendor",
    "topic",
    "event_id",
    "dataset_id",
    "duration_ms",
    "status_code",
    "attempt",
    "delay",
    "pages",
    "rows",
)

SENSITIVE_KEYS = re.compile(
    r"(token|secret|password|authorization|cipher|signature)|^code$", re.IGNORECASE
)


class JSONFormatter(logging.Formatter):
    """Produces structured JSON log lines for production observability."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        # Attach extra fields if present
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)
        return json.dumps(log_entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger with structured JSON handler."""
    logger = logging.getLogger(f"ecommind.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


def mask_sensitive(data: Any) -> Any:
    """Recursively replace values of credential-looking keys with ****."""
    if isinstance(data, dict):
        return {
            k: "****" if SENSITIVE_KEYS.search(str(k)) else mask_sensitive(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [mask_sensitive(v) for v in data]
    return data


class Timer:
    """Wall-clock timer that logs its duration when ended."""

    def __init__(self, name: str, logger: logging.Logger):
        self.name = name
        self.logger = logger
        self._start = time.perf_counter()

    def end(self, **fields: Any) -> int:
        duration_ms = int((time.perf_counter() - self._start) * 1000)
        extra = {k: v for k, v in mask_sensitive(fields).items() if k in EXTRA_FIELDS}
        extra["duration_ms"] = duration_ms
        self.logger.info(f"⏱️  {self.name} finished in {duration_ms}ms", extra=extra)
        return duration_ms


def create_timer(name: str) -> Timer:
    """Start a timer; call .end(**fields) to log and get duration in ms."""
    return Timer(name, get_logger("timer"))
