"""Main CLI entry point for teleport-autoreviewer.

Defines the CLI group and registers all subcommands.

Commands:
    identity - Identity file tools (show)
    rules    - Rejection rule tools (validate, check)
    start    - Run the service

Subcommand help:
    teleport-autoreviewer COMMAND -h
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys

import click

from teleport_autoreviewer import __version__

from .commands.identity import identity
from .commands.rules import rules
from .commands.start import start


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """teleport-autoreviewer: automatic denial of Teleport access requests."""
    if version:
        click.echo(f"teleport-autoreviewer {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(identity)
cli.add_command(rules)
cli.add_command(start)


def main() -> None:
    """CLI entry point."""
    cli()
