# src/logging/logger.py — v2
"""Logger factory with JSON and text formatters.

All shipyard loggers hang off the "shipyard" root logger, so a single
setup_logging() call configures the pipeline, the registry and the API.
Timestamps come from the record itself, not from formatting time.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shipyard.logging.context import get_context

ROOT_LOGGER = "shipyard"

# Third-party loggers that are too chatty at INFO for pipeline output.
NOISY_LIBRARIES = ("httpx", "httpcore", "botocore", "urllib3", "uvicorn.access")


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def _exception_text(formatter: logging.Formatter, record: logging.LogRecord) -> str | None:
    if record.exc_info and record.exc_info[1] is not None:
        return formatter.formatException(record.exc_info)
    return None


class JsonFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, run context, data."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_context().as_dict()
        if context:
            entry["context"] = context

        # logger.info(..., extra={"data": {...}})
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data

        exception = _exception_text(self, record)
        if exception is not None:
            entry["exception"] = exception
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line console format: time, level, logger, [pipeline] (step#attempt)."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        line = (
            f"{_timestamp(record):%Y-%m-%d %H:%M:%S} "
            f"[{record.levelname:8s}] {record.name}"
        )
        if ctx.pipeline_id:
            line += f" [{ctx.pipeline_id}]"
        if ctx.step:
            suffix = f"#{ctx.attempt}" if ctx.attempt is not None else ""
            line += f" ({ctx.step}{suffix})"
        line += f" - {record.getMessage()}"

        exception = _exception_text(self, record)
        return line if exception is None else f"{line}\n{exception}"


_FORMATTERS: dict[str, type[logging.Formatter]] = {
    "json": JsonFormatter,
    "text": TextFormatter,
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the shipyard root. Configured by setup_logging()."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def quiet_libraries(level: int = logging.WARNING) -> None:
    """Raise the threshold of chatty third-party loggers."""
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(level)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
) -> None:
    """Configure the shipyard root logger.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: "json" or "text". Unknown values fall back to text.
        log_file: Optional log file, rotated by size. Console output
            always goes to stderr so CLI results on stdout stay clean.
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = _FORMATTERS.get(log_format, TextFormatter)()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        from shipyard.logging.handlers import create_rotating_handler

        handlers.append(
            create_rotating_handler(log_file, rotation=rotation, retention=retention)
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
