"""System logger for operational events.

This module provides a singleton system logger for everything the service
does: rule compilation, identity refreshes, watch lifecycle, and every
request it reviews.

Logging strategy:
- Console (stderr): all operational messages at the configured level
- File (system.jsonl): only issues (WARNING, ERROR, CRITICAL), when a log
  directory is configured

Messages are dicts with at least "event" and "message" keys:
    logger.info({"event": "request_denied", "message": "...", "request_id": "..."})

The file handler is configured separately via configure_system_logger_file()
once the log_dir from config is available.
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "set_system_log_level",
    "silence_uvicorn_loggers",
]

import logging
import sys
from pathlib import Path

from teleport_autoreviewer.constants import APP_NAME
from teleport_autoreviewer.utils.logging.iso_formatter import ISO8601Formatter


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human-readable console output.

        Args:
            record: The log record to format.

        Returns:
            str: Formatted log message with level prefix.
        """
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
        else:
            msg = record.getMessage()
        line = f"{record.levelname}: {msg}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# Module-level singleton logger - initialized once on first use
_system_logger: logging.Logger | None = None
_file_handler: logging.FileHandler | None = None


def get_system_logger() -> logging.Logger:
    """Get the singleton system logger instance.

    Creates the logger on first call with stderr handler only.
    File handler is added later via configure_system_logger_file().

    Returns:
        logging.Logger: Configured system logger instance.

    Example:
        >>> logger = get_system_logger()
        >>> logger.warning({"event": "identity_refresh_failed", "message": "..."})
    """
    global _system_logger

    if _system_logger is not None:
        return _system_logger

    _system_logger = logging.getLogger(f"{APP_NAME}.system")
    _system_logger.setLevel(logging.INFO)
    _system_logger.propagate = False

    # Close and remove any existing handlers to avoid duplicates and resource leaks
    for handler in _system_logger.handlers:
        handler.close()
    _system_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(ConsoleFormatter())
    _system_logger.addHandler(stderr_handler)

    return _system_logger


def set_system_log_level(level: str | int) -> None:
    """Set the console log level (e.g. "DEBUG" for per-rule traces)."""
    get_system_logger().setLevel(level)


def configure_system_logger_file(log_path: Path) -> None:
    """Attach the system.jsonl file handler.

    Should be called once after config is loaded. The file handler logs
    WARNING, ERROR, CRITICAL only. Calling it again is a no-op.

    Args:
        log_path: Path to the system log file.
    """
    global _file_handler

    if _file_handler is not None:
        return

    logger = get_system_logger()

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if sys.platform != "win32":
            try:
                log_path.parent.chmod(0o700)
            except OSError:
                pass  # Permission changes might fail on some systems
    except OSError as e:
        logger.warning(
            {
                "event": "log_dir_unavailable",
                "message": f"Cannot create log directory {log_path.parent}: {e}; logging to stderr only",
            }
        )
        return

    _file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    _file_handler.setLevel(logging.WARNING)
    _file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(_file_handler)


def silence_uvicorn_loggers() -> None:
    """Suppress uvicorn's own logging (the system logger covers server events)."""
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)
