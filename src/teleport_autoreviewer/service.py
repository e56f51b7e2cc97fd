"""Service driver - wires components together and runs the loops.

Startup order:
1. Compile rules (ConfigurationError stops the service before any connection)
2. Load identity and connect (CredentialError / AccessPlaneConnectionError are fatal)
3. Start three tasks: request watcher, identity refresh loop, health server

Shutdown:
- SIGINT/SIGTERM set a shutdown event; a loop failing does the same
- Remaining tasks are cancelled once and awaited for at most
  SHUTDOWN_TIMEOUT_SECONDS, then the driver proceeds regardless
- A loop failure is re-raised after cleanup so the CLI exits non-zero
"""

from __future__ import annotations

__all__ = [
    "configure_logging",
    "run_service",
]

import asyncio
import signal
from pathlib import Path

from teleport_autoreviewer.api.server import HealthServer, create_health_app
from teleport_autoreviewer.config import AppConfig, LoggingConfig
from teleport_autoreviewer.constants import (
    HEALTH_SERVER_SHUTDOWN_TIMEOUT_SECONDS,
    SHUTDOWN_TIMEOUT_SECONDS,
    SYSTEM_LOG_FILENAME,
)
from teleport_autoreviewer.identity.manager import CredentialManager
from teleport_autoreviewer.pdp.engine import PolicyEvaluator
from teleport_autoreviewer.pdp.rules import compile_rules
from teleport_autoreviewer.plane.http_client import HttpAccessPlaneConnector
from teleport_autoreviewer.plane.protocol import AccessPlaneConnector
from teleport_autoreviewer.state import ServiceState
from teleport_autoreviewer.telemetry.system.system_logger import (
    configure_system_logger_file,
    get_system_logger,
    set_system_log_level,
    silence_uvicorn_loggers,
)
from teleport_autoreviewer.watcher import RequestWatcher

_logger = get_system_logger()


def configure_logging(logging_config: LoggingConfig) -> None:
    """Apply the logging section of the config to the system logger."""
    set_system_log_level(logging_config.log_level)
    if logging_config.log_dir:
        configure_system_logger_file(Path(logging_config.log_dir).expanduser() / SYSTEM_LOG_FILENAME)
    silence_uvicorn_loggers()


async def run_service(
    config: AppConfig,
    connector: AccessPlaneConnector | None = None,
    install_signal_handlers: bool = True,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Run the autoreviewer until a shutdown signal or a loop failure.

    Args:
        config: Loaded application config.
        connector: Plane connector (defaults to the HTTP client for
            config.teleport.addr).
        install_signal_handlers: Register SIGINT/SIGTERM handlers.
        shutdown_event: Event that stops the service when set (created if None).

    Raises:
        ConfigurationError: If a rule pattern is invalid.
        CredentialError: If the identity file cannot be loaded at startup.
        AccessPlaneConnectionError: If the first connection fails, or the
            watch connection is lost while running.
    """
    evaluator = PolicyEvaluator(compile_rules(config.rejection.rules))
    _logger.info(
        {
            "event": "rules_loaded",
            "message": f"Loaded {evaluator.rule_count} rejection rule(s)",
            "rule_count": evaluator.rule_count,
        }
    )

    state = ServiceState()
    manager = CredentialManager(
        config.teleport.identity,
        connector or HttpAccessPlaneConnector(config.teleport.base_url),
        state,
        refresh_interval=config.teleport.identity_refresh_interval,
    )
    await manager.start()

    watcher = RequestWatcher(manager, evaluator, state, config.rejection.default_message)
    health_server = HealthServer(
        create_health_app(state, config.server.health_path),
        port=config.server.health_port,
    )

    shutdown_event = shutdown_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    if install_signal_handlers:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_event.set)

    tasks = {
        "watcher": asyncio.create_task(watcher.run(), name="watcher"),
        "identity_refresh": asyncio.create_task(manager.run_refresh_loop(), name="identity_refresh"),
        "health_server": asyncio.create_task(health_server.serve(), name="health_server"),
    }
    shutdown_waiter = asyncio.create_task(shutdown_event.wait(), name="shutdown_waiter")

    _logger.info(
        {
            "event": "service_started",
            "message": f"Watching access requests on {config.teleport.addr}",
            "refresh_interval_seconds": config.teleport.identity_refresh_interval,
        }
    )

    failure: BaseException | None = None
    try:
        done, _ = await asyncio.wait(
            {*tasks.values(), shutdown_waiter},
            return_when=asyncio.FIRST_COMPLETED,
        )
        for name, task in tasks.items():
            if task in done and not task.cancelled() and task.exception() is not None:
                failure = task.exception()
                _logger.error(
                    {
                        "event": "service_loop_failed",
                        "message": f"{name} stopped: {failure}",
                        "loop": name,
                    }
                )
                break
    finally:
        if install_signal_handlers:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except (ValueError, OSError, RuntimeError):
                    pass  # Handler already removed or loop closing
        shutdown_waiter.cancel()
        await _shutdown(tasks, health_server, manager)

    if failure is not None:
        raise failure

    _logger.info({"event": "service_stopped", "message": "Shutdown complete"})


async def _shutdown(
    tasks: dict[str, asyncio.Task[None]],
    health_server: HealthServer,
    manager: CredentialManager,
) -> None:
    """Cancel every loop once and wait up to SHUTDOWN_TIMEOUT_SECONDS."""
    health_server.request_exit()
    health_task = tasks["health_server"]
    if not health_task.done():
        await asyncio.wait({health_task}, timeout=HEALTH_SERVER_SHUTDOWN_TIMEOUT_SECONDS)

    for task in tasks.values():
        if not task.done():
            task.cancel()

    _, pending = await asyncio.wait(tasks.values(), timeout=SHUTDOWN_TIMEOUT_SECONDS)
    if pending:
        _logger.warning(
            {
                "event": "shutdown_timeout",
                "message": f"Loops still running after {SHUTDOWN_TIMEOUT_SECONDS:.0f}s: "
                + ", ".join(sorted(name for name, task in tasks.items() if task in pending)),
            }
        )

    await manager.close()
