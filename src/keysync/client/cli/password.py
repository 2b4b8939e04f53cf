"""Password commands for the keysync CLI.

Commands:
- set-password: Cache the sync password in the OS keyring
- change-password: Re-encrypt all remote data with a new password
- reset-password: Delete all remote data and start over with a new password
- clear-password: Remove the cached password
"""

from __future__ import annotations

import sys

import click

from keysync.client.cli.config import build_sync_config
from keysync.client.cli.sync import describe_error, open_engine
from keysync.client.keystore import KeyStoreError, PasswordStore


def _password_store() -> PasswordStore:
    try:
        config = build_sync_config()
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)
    return PasswordStore(service=config.keyring_service)


@click.command("set-password")
def set_password() -> None:
    """Cache the sync password in the OS keyring.

    Use the same password on every machine. The first sync checks it
    against the remote data.
    """
    passwords = _password_store()
    if passwords.has_password():
        click.confirm("A sync password is already set. Replace it?", abort=True)

    password = click.prompt(
        "Sync password",
        hide_input=True,
        confirmation_prompt="Confirm sync password",
    )

    try:
        passwords.store(password)
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("Sync password saved.")


@click.command("change-password")
def change_password() -> None:
    """Re-encrypt all remote data with a new password.

    Every remote file is decrypted first; if any cannot be decrypted nothing
    is changed. Other machines must then run 'keysync set-password'.
    """
    new_password = click.prompt(
        "New sync password",
        hide_input=True,
        confirmation_prompt="Confirm new sync password",
    )

    with open_engine() as engine:
        try:
            engine.change_password(new_password)
        except Exception as e:
            click.echo(f"Error: {describe_error(e)}", err=True)
            sys.exit(1)

    click.echo("Sync password changed.")


@click.command("reset-password")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
def reset_password(yes: bool) -> None:
    """Delete ALL remote data and start over with a new password.

    Use this when the old password is lost. Local data is kept and uploaded
    again by the next sync.
    """
    if not yes:
        click.confirm("This deletes every remote file. Continue?", abort=True)

    new_password = click.prompt(
        "New sync password",
        hide_input=True,
        confirmation_prompt="Confirm new sync password",
    )

    with open_engine(require_password=False) as engine:
        try:
            engine.reset_password(new_password)
        except Exception as e:
            click.echo(f"Error: {describe_error(e)}", err=True)
            sys.exit(1)

    click.echo("Remote data deleted and new sync password saved.")


@click.command("clear-password")
def clear_password() -> None:
    """Remove the cached sync password from the OS keyring."""
    _password_store().clear()
    click.echo("Sync password removed.")
