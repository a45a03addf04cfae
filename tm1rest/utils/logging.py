"""
Logging setup for TM1Rest.

Library modules only ever call logging.getLogger("tm1rest.<module>").
Applications (and the bundled CLI) call setup_logging() once to attach
handlers to the "tm1rest" logger.

Usage:
    from tm1rest.utils import setup_logging

    logger = setup_logging(log_dir="logs", log_level="DEBUG", console_output=True)
    logger.info("Import started")
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

ROOT_LOGGER = "tm1rest"

DEFAULT_LOG_DIR = "logs"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# LogRecord attributes that are not user supplied "extra" fields
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


class SmartFormatter(logging.Formatter):
    """
    Compact formatter that adds [file:line] to warnings and errors
    and can colorize console output.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        datefmt: str = DEFAULT_DATE_FORMAT,
        use_colors: bool = False,
        include_location: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()
        self.include_location = include_location

    @staticmethod
    def _supports_color() -> bool:
        if sys.platform == "win32":
            return os.environ.get("TERM") is not None or os.environ.get("WT_SESSION") is not None
        return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        if self.include_location and record.levelno >= logging.WARNING:
            location = f" [{record.filename}:{record.lineno}]"
            parts = formatted.split(" | ", 3)
            if len(parts) >= 3:
                formatted = f"{parts[0]} | {parts[1]}{location} | {' | '.join(parts[2:])}"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            formatted = f"{color}{formatted}{self.COLORS['RESET']}"

        return formatted


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info and record.exc_info[0]:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        extra = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def setup_logging(
    log_dir: str | Path | None = DEFAULT_LOG_DIR,
    log_level: int | str = logging.INFO,
    use_json: bool = False,
    console_output: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Attach handlers to the tm1rest logger and return it.

    Args:
        log_dir: Directory for tm1rest.log and tm1rest.error.log (None disables files)
        log_level: Minimum level (int or name like "INFO")
        use_json: Write the main log file as JSON lines
        console_output: Also log to stdout
        max_bytes: Size per log file before rotation
        backup_count: Number of rotated files to keep
    """
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path / f"{ROOT_LOGGER}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(JSONFormatter() if use_json else SmartFormatter())
        logger.addHandler(file_handler)

        error_handler = RotatingFileHandler(
            log_path / f"{ROOT_LOGGER}.error.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(
            SmartFormatter(
                fmt="%(asctime)s | %(levelname)-8s | %(name)s | [%(filename)s:%(lineno)d] | %(message)s",
                include_location=False,
            )
        )
        logger.addHandler(error_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(
            SmartFormatter(
                fmt="%(asctime)s | %(levelname)-8s | %(message)s",
                use_colors=True,
                include_location=False,
            )
        )
        logger.addHandler(console_handler)

    return logger


def log_tm1_operation(
    logger: logging.Logger,
    operation: str,
    target: str,
    success: bool,
    duration_ms: float | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Log a TM1 operation with structured extra fields.

    Args:
        logger: Logger to write to
        operation: Operation name (e.g., "bulk_write", "poll_execute")
        target: Cube or process name
        success: Whether the operation succeeded
        duration_ms: Optional operation duration
        details: Optional extra fields (cells, chunks, attempts, ...)
    """
    log_data: dict[str, Any] = {
        "tm1_operation": operation,
        "tm1_target": target,
        "success": success,
    }
    if duration_ms is not None:
        log_data["duration_ms"] = round(duration_ms, 2)
    if details:
        log_data.update(details)

    suffix = f" ({duration_ms:.2f}ms)" if duration_ms is not None else ""
    if success:
        logger.info(f"TM1 {operation} [{target}]: success{suffix}", extra=log_data)
    else:
        logger.error(f"TM1 {operation} [{target}]: failed{suffix}", extra=log_data)
