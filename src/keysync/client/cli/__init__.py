"""Command-line interface for keysync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- set-password: Cache the sync password in the OS keyring
- change-password: Re-encrypt all remote data with a new password
- reset-password: Delete all remote data and set a new password
- clear-password: Remove the cached password
- sync: Run a manual sync pass
- watch: Poll the remote store until interrupted
- check: List remote files the password cannot decrypt
- reset-remote: Delete remote keyboard and/or favorites data
- export: Export local data to a JSON file
- import: Import a JSON export into local data
"""

from __future__ import annotations

import logging

import click

from keysync.client.cli.config import (
    build_sync_config,
    get_config_dir,
    get_config_file,
    get_data_dir,
    get_drive_token,
    load_config,
    save_config,
)
from keysync.client.cli.data import export_data, import_data
from keysync.client.cli.password import (
    change_password,
    clear_password,
    reset_password,
    set_password,
)
from keysync.client.cli.sync import check, reset_remote, sync, watch


def configure_logging(verbose: bool) -> None:
    """Send keysync log records to stderr."""
    keysync_logger = logging.getLogger("keysync")
    for handler in keysync_logger.handlers[:]:
        keysync_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    keysync_logger.addHandler(handler)
    keysync_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    keysync_logger.propagate = False


@click.group()
@click.version_option(package_name="keysync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """keysync - Encrypted sync of keyboard settings, snapshots and favorites."""
    configure_logging(verbose)


# Password commands
cli.add_command(set_password)
cli.add_command(change_password)
cli.add_command(reset_password)
cli.add_command(clear_password)

# Sync commands
cli.add_command(sync)
cli.add_command(watch)
cli.add_command(check)
cli.add_command(reset_remote)

# Data commands
cli.add_command(export_data)
cli.add_command(import_data)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    "configure_logging",
    # Config utilities
    "build_sync_config",
    "get_config_dir",
    "get_config_file",
    "get_data_dir",
    "get_drive_token",
    "load_config",
    "save_config",
]
