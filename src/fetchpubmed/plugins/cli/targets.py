"""
CLI command: targets

Lists the archive files a run would fetch, without downloading anything.
"""

import click

from fetchpubmed.data.fetch import FetchTarget
from fetchpubmed.plugins.cli import settings_from_context


@click.command("targets")
@click.option("-y", "--year", type=int, default=None, help="Baseline year tag")
@click.option("-s", "--start", type=int, default=None, help="First file number")
@click.option("-e", "--end", type=int, default=None, help="Last file number")
@click.option("--urls", is_flag=True, help="Print full URLs instead of filenames")
@click.pass_context
def cli(ctx, year, start, end, urls) -> None:
    """
    List the files in the configured range.
    """
    settings = settings_from_context(ctx, year=year, start=start, end=end)
    for target in FetchTarget.from_settings(settings):
        click.echo(target.url if urls else target.filename)
