"""Logging configuration for the learning-progress service.

Two output modes, selected by LOG_JSON:

  _ContainerFormatter: one human-readable line per event, for local dev
    and for reading `docker logs` by eye.  Warnings and errors carry a
    [file:line] suffix so a rejected transition can be traced to the guard
    clause that raised it.

  _JsonFormatter: one JSON object per line (JSON Lines), for log
    aggregation.  Request context (request_id, user_id, ...) and domain
    identifiers (enrollment_id, record_id) become top-level keys, so
    "every rejection for enrollment X" is a field filter rather than a regex.

Domain code attaches identifiers with ``extra=``::

    logger.info(
        "Enrollment started", extra={"enrollment_id": str(enrollment.id)}
    )
"""

from __future__ import annotations

import json
import logging
import sys

# Fields lifted from LogRecord attributes into the JSON payload.  The
# request middleware sets the first group, services set the second.
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "user_id",
    "status_code",
    "duration_ms",
    "enrollment_id",
    "record_id",
)


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp with milliseconds, level, logger, message
    - WARNING+: appends [filename:lineno]
    - Stack traces are included when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter; see CONTEXT_FIELDS for the lifted attributes."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            # The request filter stamps "-" outside of a request.
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: debug/info/warning/error; unknown names fall back to INFO.
        json_format: emit JSON lines instead of the text format.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Keep third-party loggers from flooding at DEBUG
    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
