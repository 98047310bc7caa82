"""Structured JSON logging module.

This module provides JSON-formatted logging with batch context tracking
for the preprocessing and post-processing pipelines. Logs metadata only
(sizes, counts, stage names), never pixel data.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any

# Context variable for the index of the image currently being processed
batch_index_var: ContextVar[int | None] = ContextVar("batch_index", default=None)

EXTRA_FIELDS: tuple[str, ...] = (
    "stage",
    "task",
    "original_size",
    "reshaped_size",
    "num_detections",
    "num_segments",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as JSON objects with standardized fields:
    - timestamp: ISO format timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - batch_index: Optional index of the image within a batch
    - stage, task, original_size, reshaped_size, num_detections,
      num_segments: Optional extra fields
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        batch_index = batch_index_var.get()
        if batch_index is not None:
            log_data["batch_index"] = batch_index

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Setup logging for the application.

    Configures the root logger with:
    - JSON formatter (or a plain text formatter when ``log_format="text"``)
    - StreamHandler to stdout
    - Specified log level

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: ``"json"`` or ``"text"``

    Raises:
        ValueError: If the level or format is unknown
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    elif log_format == "text":
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    else:
        raise ValueError(f"Unknown log format: {log_format} (expected 'json' or 'text')")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
