"""System operational logging.

Provides the system logger for operational events (startup, identity
refreshes, watch lifecycle, request reviews).
"""

from teleport_autoreviewer.telemetry.system.system_logger import (
    ConsoleFormatter,
    configure_system_logger_file,
    get_system_logger,
    set_system_log_level,
    silence_uvicorn_loggers,
)

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "set_system_log_level",
    "silence_uvicorn_loggers",
]
