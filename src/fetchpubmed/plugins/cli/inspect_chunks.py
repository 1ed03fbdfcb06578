"""
CLI command: inspect

Checks output chunk files: row counts and the five-field row layout.
"""

import logging
from pathlib import Path

import click

from fetchpubmed.data.serialize import split_row

# Configure module-level logger
logger = logging.getLogger("fetchpubmed.cli.inspect")


@click.command("inspect")
@click.argument(
    "paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
def cli(paths) -> None:
    """
    Count rows in output chunks and report malformed ones.

    PATHS may be chunk files or directories holding them.
    """
    files = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(path.glob("*.tsv")))
        else:
            files.append(path)

    total = 0
    bad = 0
    for path in files:
        rows = 0
        with path.open("r", encoding="utf-8", newline="") as fh:
            for line_no, line in enumerate(fh, start=1):
                rows += 1
                try:
                    split_row(line)
                except ValueError as exc:
                    bad += 1
                    logger.warning("%s:%d: %s", path, line_no, exc)
        click.echo(f"{path}: {rows} rows")
        total += rows

    click.echo(f"Total: {total} rows in {len(files)} file(s), {bad} malformed")
    if bad:
        raise click.ClickException(f"{bad} malformed row(s)")
