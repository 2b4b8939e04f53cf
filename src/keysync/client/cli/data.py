"""Export and import commands for the keysync CLI.

Commands:
- export: Write every local sync unit to a JSON file
- import: Merge a JSON export into local data
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from keysync.client.cli.config import get_data_dir
from keysync.client.cli.sync import describe_error, echo_progress, open_engine


@click.command("export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
def export_data(output: Path) -> None:
    """Export local favorites, snapshots and settings to OUTPUT."""
    from keysync.client.sync import LocalLayout, export_local_data

    data = export_local_data(LocalLayout(get_data_dir()))
    output.write_text(json.dumps(data, indent=2), encoding="utf-8")

    counts = ", ".join(f"{len(data[name])} {name}" for name in ("favorites", "snapshots", "settings"))
    click.echo(f"Exported {counts} to {output}")


@click.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--upload", is_flag=True, help="Upload the imported units right away.")
def import_data(source: Path, upload: bool) -> None:
    """Import an export file from SOURCE into local data.

    Entries missing locally are added; settings replace local ones only when
    newer.
    """
    from keysync.client.sync import LocalLayout, import_local_data

    try:
        data = json.loads(source.read_text(encoding="utf-8"))
        changed = import_local_data(LocalLayout(get_data_dir()), data)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not changed:
        click.echo("Nothing to import.")
        return

    click.echo(f"Imported {len(changed)} sync unit(s):")
    for unit in changed:
        click.echo(f"  {unit}")

    if not upload:
        return

    with open_engine() as engine:
        engine.set_progress_callback(echo_progress)
        try:
            for unit in changed:
                engine.notify_change(unit)
        except ValueError as e:
            click.echo(f"Error: {describe_error(e)}", err=True)
            sys.exit(1)
        # Flushes the pending units synchronously
        engine.shutdown()
