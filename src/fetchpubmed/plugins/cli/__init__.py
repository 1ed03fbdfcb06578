"""
Plugin commands for the fetchpubmed CLI.

Every module in this package that defines a top-level ``cli`` click command
is registered on the main group.
"""

import click
from pydantic import ValidationError

from fetchpubmed.settings import Settings, load_settings


def settings_from_context(ctx: click.Context, **overrides) -> Settings:
    """
    Resolve settings from the group's ``--config``/``--log-*`` options and
    command-specific ``overrides``.
    """
    obj = ctx.find_object(dict) or {}
    try:
        return load_settings(
            obj.get("config"),
            log_level=obj.get("log_level"),
            log_file=obj.get("log_file"),
            **overrides,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e
    except (OSError, ValueError) as e:
        raise click.ClickException(str(e)) from e
