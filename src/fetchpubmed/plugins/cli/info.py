"""
CLI command: info

Displays fetchpubmed package version and the effective configuration.
"""

import logging
from importlib.metadata import PackageNotFoundError, version

import click

from fetchpubmed.plugins.cli import settings_from_context

# Configure module-level logger
logger = logging.getLogger("fetchpubmed.cli.info")


@click.command("info")
@click.pass_context
def cli(ctx) -> None:
    """
    Show package metadata and the effective configuration.
    """
    # Retrieve package version, fallback if not installed
    try:
        pkg_version = version("fetchpubmed")
        logger.debug("Retrieved package version: %s", pkg_version)
    except PackageNotFoundError:
        pkg_version = "0.0.0-dev"
        logger.warning(
            "Package 'fetchpubmed' not found; using development version placeholder."
        )

    click.echo(f"fetchpubmed version: {pkg_version}")

    settings = settings_from_context(ctx)
    click.echo("\nCurrent configuration:")
    click.echo(f"  Source: {settings.base_url}")
    click.echo(f"  Year: {settings.year}")
    click.echo(f"  Range: {settings.start}-{settings.end}")
    click.echo(f"  Output directory: {settings.output_dir}")
    click.echo(f"  Rows per chunk: {settings.rows_per_chunk}")
    click.echo(f"  Max attempts: {settings.max_attempts}")
    click.echo(f"  Log level: {settings.log_level}")
    click.echo(f"  Log file: {settings.log_file or '-'}")
