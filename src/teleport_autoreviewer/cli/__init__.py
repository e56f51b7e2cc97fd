"""Command-line interface for teleport-autoreviewer."""

from .main import cli, main

__all__ = ["cli", "main"]
