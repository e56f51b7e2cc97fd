"""Shared CLI options and config loading."""

from __future__ import annotations

__all__ = [
    "config_option",
    "load_config_or_exit",
]

import sys
from pathlib import Path
from typing import Any, Callable

import click

from teleport_autoreviewer.config import AppConfig
from teleport_autoreviewer.constants import DEFAULT_CONFIG_PATH
from teleport_autoreviewer.exceptions import ConfigurationError

from .styling import style_error


def config_option(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the --config/-c option (default: config.yaml in the working directory)."""
    return click.option(
        "--config",
        "-c",
        "config_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=DEFAULT_CONFIG_PATH,
        show_default=True,
        help="Path to the YAML config file",
    )(func)


def load_config_or_exit(config_path: Path) -> AppConfig:
    """Load config, printing the error and exiting with its exit code on failure."""
    try:
        return AppConfig.load_from_file(config_path)
    except ConfigurationError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(e.exit_code)
