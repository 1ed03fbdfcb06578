"""
CLI command: run

Fetches the configured range of baseline files and writes chunked TSV output.
"""

import logging
from pathlib import Path

import click

from fetchpubmed.pipeline import Orchestrator
from fetchpubmed.plugins.cli import settings_from_context

# Configure module-level logger
logger = logging.getLogger("fetchpubmed.cli.run")


@click.command("run")
@click.option("-y", "--year", type=int, default=None, help="Baseline year tag")
@click.option("-s", "--start", type=int, default=None, help="First file number")
@click.option("-e", "--end", type=int, default=None, help="Last file number")
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the output chunks",
)
@click.pass_context
def cli(ctx, year, start, end, output_dir) -> None:
    """
    Fetch, parse and split baseline files START..END of YEAR.

    Files that cannot be downloaded are reported at the end and do not
    change the exit status; output errors abort the run with a non-zero
    status.
    """
    settings = settings_from_context(
        ctx, year=year, start=start, end=end, output_dir=output_dir
    )

    try:
        settings.create_directories()
    except OSError as exc:
        logger.error(
            "Error: Failed to create output directory: %s (%s)",
            settings.output_dir,
            exc,
        )
        ctx.exit(1)

    report = Orchestrator(settings).run()
    report.log_summary()
    ctx.exit(report.exit_code)
