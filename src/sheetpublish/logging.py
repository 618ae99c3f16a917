"""Logging configuration.

Configures loguru to write JSON lines in production (one object per record,
suitable for log collectors) and colored human-readable output otherwise.
Standard library logging from httpx and botocore is routed into loguru.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from typing import Any

from loguru import logger

_SEVERITY = {
    "TRACE": "DEBUG",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}

_LIBRARY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3")


def _serialize(record: dict[str, Any]) -> str:
    """Serialize a log record to a single JSON line.

    Fields: severity, message, time, plus any bound ``extra`` values
    (document_id and friends) at the top level.
    """
    entry: dict[str, Any] = {
        "severity": _SEVERITY.get(record["level"].name, "INFO"),
        "message": record["message"],
        "time": record["time"].isoformat(),
        "logger": record["name"],
    }

    if record["exception"] is not None:
        exc_info = record["exception"]
        tb_str = None
        if exc_info.traceback:
            tb_str = "".join(
                traceback.format_exception(exc_info.type, exc_info.value, exc_info.traceback)
            )
        entry["exception"] = {
            "type": exc_info.type.__name__ if exc_info.type else None,
            "value": str(exc_info.value) if exc_info.value else None,
            "traceback": tb_str,
        }

    for key, value in record.get("extra", {}).items():
        if not key.startswith("_"):
            entry[key] = value

    return json.dumps(entry, default=str)


def _json_sink(message: Any) -> None:
    """Sink that writes serialized JSON to stderr."""
    sys.stderr.write(_serialize(message.record) + "\n")
    sys.stderr.flush()


def configure_logging(*, is_production: bool, log_level: str = "INFO") -> None:
    """Configure loguru for the application.

    Args:
        is_production: If True, output JSON lines. If False, use
            human-readable colored output for development.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logger.remove()

    if is_production:
        logger.add(
            _json_sink,
            level=log_level,
            format="{message}",
            backtrace=False,
            diagnose=False,  # no variable values in production
        )
    else:
        logger.add(
            sys.stderr,
            level=log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
            ),
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    _intercept_standard_logging(log_level)


class InterceptHandler(logging.Handler):
    """Route standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logged message originated
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _intercept_standard_logging(log_level: str) -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=log_level, force=True)

    # Library chatter stays at WARNING unless we are debugging
    library_level = log_level if log_level == "DEBUG" else "WARNING"
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
        logging.getLogger(name).handlers = [InterceptHandler()]
