"""Identity commands for teleport-autoreviewer CLI."""

from __future__ import annotations

__all__ = [
    "identity",
]

import sys
from pathlib import Path

import click

from teleport_autoreviewer.exceptions import CredentialError
from teleport_autoreviewer.identity.credentials import get_credential_expiry_info, load_identity_file

from ..options import config_option, load_config_or_exit
from ..styling import style_error, style_header, style_label, style_warning


@click.group()
def identity() -> None:
    """Identity file tools."""
    pass


@identity.command("show")
@config_option
def show(config_path: Path) -> None:
    """Parse the configured identity file and show its certificate.

    Exits 13 if the file is missing, incomplete, or expired.
    """
    config = load_config_or_exit(config_path)
    try:
        credential = load_identity_file(config.teleport.identity)
    except CredentialError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(e.exit_code)

    info = get_credential_expiry_info(credential)
    click.echo(style_header("Identity"))
    click.echo(style_label("File") + f" {credential.source}")
    click.echo(style_label("Subject") + f" {info['subject']}")
    click.echo(style_label("Valid from") + f" {info['not_before']}")
    click.echo(style_label("Expires") + f" {info['expires_at']}")
    click.echo(style_label("CA bundle") + (" present" if credential.ca_pem else " none (system trust store)"))
    if credential.expires_within(config.teleport.identity_refresh_interval):
        click.echo(style_warning("Certificate expires before the next scheduled refresh"))
