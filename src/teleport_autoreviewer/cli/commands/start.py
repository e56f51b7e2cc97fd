"""Start command for teleport-autoreviewer CLI.

Runs the service in the foreground until SIGINT/SIGTERM.
"""

from __future__ import annotations

__all__ = [
    "start",
]

import asyncio
import sys
from pathlib import Path

import click

from teleport_autoreviewer.exceptions import AutoreviewerError
from teleport_autoreviewer.service import configure_logging, run_service
from teleport_autoreviewer.telemetry.system.system_logger import get_system_logger

from ..options import config_option, load_config_or_exit
from ..styling import style_error


@click.command()
@config_option
def start(config_path: Path) -> None:
    """Start the autoreviewer service.

    Loads the config, compiles rejection rules, connects to Teleport with the
    identity file, and watches access requests until interrupted.

    Exit codes:
        0   Clean shutdown
        13  Identity file unusable at startup
        16  Invalid configuration or rule pattern
        17  Connection to Teleport failed or was lost

    Examples:
        teleport-autoreviewer start
        teleport-autoreviewer start --config /etc/autoreviewer/config.yaml
    """
    config = load_config_or_exit(config_path)
    configure_logging(config.logging)

    try:
        asyncio.run(run_service(config))
    except AutoreviewerError as e:
        get_system_logger().critical(
            {
                "event": "service_failed",
                "message": str(e),
                "failure_type": e.failure_type,
                "exit_code": e.exit_code,
            }
        )
        click.echo(style_error(str(e)), err=True)
        sys.exit(e.exit_code)
    except OSError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)
