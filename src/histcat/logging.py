"""The logging configuration for the histcat package."""

from __future__ import annotations

import os
import sys
from datetime import datetime
from logging import (
    DEBUG,
    INFO,
    FileHandler,
    Formatter,
    Handler,
    Logger,
    LogRecord,
    StreamHandler,
    getLogger,
)
from typing import TYPE_CHECKING

from pythonjsonlogger.json import JsonFormatter

if TYPE_CHECKING:
    from pathlib import Path


def _json_logs_requested() -> bool:
    return os.getenv("HISTCAT_LOG_FORMAT", "").lower() == "json"


class _TimestampedJsonFormatter(JsonFormatter):
    def formatTime(self, record: LogRecord, datefmt: str | None = None) -> str:  # noqa: ARG002, N802
        # Format the timestamp as RFC 3339 with microsecond precision
        isoformat = datetime.fromtimestamp(record.created).isoformat()  # noqa: DTZ006
        return f"{isoformat}Z"


def _build_formatter() -> Formatter:
    if _json_logs_requested():
        # Batch systems: structured JSON logs
        return _TimestampedJsonFormatter(
            "%(asctime)s %(levelname)s %(threadName)s %(message)s",
            rename_fields={
                "levelname": "severity",
                "asctime": "timestamp",
            },
        )
    # Local: human-friendly with thread name
    return Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | [%(threadName)s] %(message)s",
        "%Y-%m-%d %H:%M:%S",
    )


logger: Logger = getLogger("histcat")
logger.setLevel(DEBUG)
logger.handlers.clear()

stream_handler = StreamHandler(sys.stdout)
stream_handler.setLevel(INFO)
stream_handler.setFormatter(_build_formatter())
logger.addHandler(stream_handler)


def set_verbosity(verbosity: int) -> None:
    """
    Set how much detail is echoed to the operator.

    :param verbosity: The number of times ``--verbose`` was given.
    """
    stream_handler.setLevel(DEBUG if verbosity >= 1 else INFO)


def attach_run_log(log_path: Path) -> Handler:
    """
    Copy every log record of this run into the run log file.

    The run log always records DEBUG detail, whatever the console verbosity.

    :param log_path: The path of the run log file, created if missing.
    :return: The attached handler, to be passed to ``detach_run_log``.
    """
    file_handler = FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(DEBUG)
    file_handler.setFormatter(_build_formatter())
    logger.addHandler(file_handler)
    return file_handler


def detach_run_log(handler: Handler) -> None:
    """Stop writing to the run log file and close it."""
    logger.removeHandler(handler)
    handler.close()
