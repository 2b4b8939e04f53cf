"""Sync commands for the keysync CLI.

Commands:
- sync: Run a manual sync pass
- watch: Poll the remote store until interrupted
- check: List remote files the cached password cannot decrypt
- reset-remote: Delete remote keyboard and/or favorites data
"""

from __future__ import annotations

import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from keysync.client.cli.config import TOKEN_ENV_VAR, build_sync_config, get_drive_token

if TYPE_CHECKING:
    from keysync.client.sync import SyncEngine, SyncProgress


@contextmanager
def open_engine(require_password: bool = True) -> Iterator[SyncEngine]:
    """Build a SyncEngine wired to Drive, the keyring and the local data dir.

    Exits with an error message when the token or the password is missing.
    """
    from keysync.client.api import DriveClient
    from keysync.client.keystore import PasswordStore
    from keysync.client.sync import LocalLayout, SyncEngine

    try:
        config = build_sync_config()
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)

    token = get_drive_token()
    if not token:
        click.echo(f"Error: no Drive access token. Set {TOKEN_ENV_VAR}.", err=True)
        sys.exit(1)

    passwords = PasswordStore(service=config.keyring_service)
    if require_password and not passwords.has_password():
        click.echo("Error: no sync password set. Run 'keysync set-password' first.", err=True)
        sys.exit(1)

    with DriveClient(token, timeout=config.drive_timeout) as client:
        yield SyncEngine(client, LocalLayout(config.data_dir), passwords, config)


def echo_progress(progress: SyncProgress) -> None:
    """Print a progress event."""
    from keysync.core.types import SyncDirection, SyncStatus

    arrow = "↑" if progress.direction is SyncDirection.UPLOAD else "↓"

    if progress.status is SyncStatus.SYNCING:
        if progress.sync_unit and progress.total:
            click.echo(f"  {arrow} {progress.sync_unit} ({progress.current}/{progress.total})")
        elif progress.sync_unit:
            click.echo(f"  {arrow} {progress.sync_unit}")
        elif progress.message:
            click.echo(progress.message)
    elif progress.status is SyncStatus.SUCCESS:
        if progress.sync_unit:
            click.echo(f"  {arrow} {progress.sync_unit} updated")
        else:
            click.echo(progress.message or "Sync complete")
    elif progress.status is SyncStatus.PARTIAL:
        click.echo(f"Warning: {progress.message}", err=True)
        for unit in progress.failed_units:
            click.echo(f"  ✗ {unit}", err=True)
    else:
        click.echo(f"Error: {progress.message}", err=True)


def describe_error(error: Exception) -> str:
    """User-facing message for an engine error."""
    from keysync.client.api import AuthenticationError
    from keysync.client.sync import (
        PasswordMismatchError,
        SamePasswordError,
        SyncInProgressError,
        UndecryptableFilesError,
    )

    if isinstance(error, PasswordMismatchError):
        return "Sync password does not match the remote data."
    if isinstance(error, AuthenticationError):
        return f"Drive rejected the access token. Refresh {TOKEN_ENV_VAR}."
    if isinstance(error, SamePasswordError):
        return "The new password is the same as the current one."
    if isinstance(error, UndecryptableFilesError):
        return (
            f"Cannot decrypt {error.file_name} with the current password. "
            "Nothing was changed; run 'keysync check' for details."
        )
    if isinstance(error, SyncInProgressError):
        return "A sync is already in progress."
    return str(error)


@click.command()
@click.option(
    "--direction",
    "-d",
    type=click.Choice(["download", "upload", "both"]),
    default="both",
    show_default=True,
    help="Pull remote changes, push local changes, or both.",
)
@click.option("--favorites", is_flag=True, help="Only sync favorites.")
@click.option("--keyboard", "keyboard_uid", metavar="UID", help="Only sync one keyboard.")
def sync(direction: str, favorites: bool, keyboard_uid: str | None) -> None:
    """Synchronize local data with the remote store."""
    from keysync.client.sync import KeyboardScope, SyncScope
    from keysync.core.types import SyncStatus

    if favorites and keyboard_uid:
        click.echo("Error: --favorites and --keyboard are mutually exclusive.", err=True)
        sys.exit(1)

    scope: SyncScope = "all"
    if favorites:
        scope = "favorites"
    elif keyboard_uid:
        scope = KeyboardScope(keyboard_uid)

    directions = ["download", "upload"] if direction == "both" else [direction]
    statuses: list[SyncStatus] = []

    def on_progress(progress: SyncProgress) -> None:
        if progress.sync_unit is None and progress.status is not SyncStatus.SYNCING:
            statuses.append(progress.status)
        echo_progress(progress)

    with open_engine() as engine:
        engine.set_progress_callback(on_progress)
        for current in directions:
            try:
                engine.execute_sync(current, scope)
            except Exception as e:
                click.echo(f"Error: {describe_error(e)}", err=True)
                sys.exit(1)

    if SyncStatus.PARTIAL in statuses:
        sys.exit(1)


@click.command()
@click.option("--no-initial-sync", is_flag=True, help="Skip the initial download pass.")
def watch(no_initial_sync: bool) -> None:
    """Poll the remote store for changes until interrupted.

    Pending local changes are flushed before exiting.
    """
    with open_engine() as engine:
        engine.set_progress_callback(echo_progress)

        if not no_initial_sync:
            try:
                engine.execute_sync("download")
            except Exception as e:
                click.echo(f"Error: {describe_error(e)}", err=True)
                sys.exit(1)

        engine.start_polling()
        click.echo("Watching for remote changes. Press Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("\nStopping...")
        finally:
            engine.shutdown()


@click.command()
def check() -> None:
    """List remote files the cached password cannot decrypt."""
    with open_engine() as engine:
        try:
            files = engine.list_undecryptable_files()
        except Exception as e:
            click.echo(f"Error: {describe_error(e)}", err=True)
            sys.exit(1)

    if not files:
        click.echo("All remote files can be decrypted.")
        return

    click.echo(f"{len(files)} remote file(s) cannot be decrypted:")
    for file in files:
        click.echo(f"  {file.file_name}" + (f" ({file.sync_unit})" if file.sync_unit else ""))
    sys.exit(1)


@click.command("reset-remote")
@click.option("--keyboards", is_flag=True, help="Delete remote keyboard data.")
@click.option("--favorites", is_flag=True, help="Delete remote favorites.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
def reset_remote(keyboards: bool, favorites: bool, yes: bool) -> None:
    """Delete remote keyboard and/or favorites data.

    Local data is kept; the next upload recreates the remote copies.
    """
    if not keyboards and not favorites:
        click.echo("Error: select --keyboards and/or --favorites.", err=True)
        sys.exit(1)

    targets = " and ".join(
        name for name, selected in (("keyboard data", keyboards), ("favorites", favorites)) if selected
    )
    if not yes:
        click.confirm(f"Delete all remote {targets}?", abort=True)

    with open_engine(require_password=False) as engine:
        try:
            engine.reset_remote(keyboards=keyboards, favorites=favorites)
        except Exception as e:
            click.echo(f"Error: {describe_error(e)}", err=True)
            sys.exit(1)

    click.echo(f"Remote {targets} deleted.")
