"""
Core fetchpubmed CLI: dynamically loads commands from plugins/cli.
"""

import importlib
import logging
import pathlib
import pkgutil
from typing import Optional

import click

from fetchpubmed.plugins.cli import settings_from_context
from fetchpubmed.settings import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Logging configuration: every fetchpubmed.* logger reports through here
logger = logging.getLogger("fetchpubmed")
handler = logging.StreamHandler()
formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
handler.setFormatter(formatter)
logger.addHandler(handler)

# Load global settings
settings = Settings()
logger.setLevel(getattr(logging, settings.log_level.upper()))


def configure_log_file(path: Optional[pathlib.Path]) -> Optional[logging.Handler]:
    """
    Mirror diagnostics into ``path``, truncating it first.

    Any file handler installed by an earlier call is replaced.
    """
    for existing in list(logger.handlers):
        if isinstance(existing, logging.FileHandler):
            logger.removeHandler(existing)
            existing.close()
    if path is None:
        return None

    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.info("Logging enabled: writing to %s", path)
    return file_handler


@click.group()
@click.option(
    "--log-level",
    default=None,
    help=f"Set logging level [default: {settings.log_level}]",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=pathlib.Path),
    default=None,
    help="Also write diagnostics to this file",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=pathlib.Path),
    default=None,
    help="YAML file with settings overrides",
)
@click.pass_context
def main(ctx, log_level, log_file, config_path):
    """
    fetchpubmed CLI
    """
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["log_file"] = log_file
    ctx.obj["config"] = config_path

    # Flags override the config file, which overrides the environment
    resolved = settings_from_context(ctx)

    # Update logging level
    logger.setLevel(getattr(logging, resolved.log_level))
    configure_log_file(resolved.log_file)

    # Update global settings
    settings.log_level = resolved.log_level
    settings.log_file = resolved.log_file


def load_commands():
    """
    Auto-discover and register click commands from fetchpubmed/plugins/cli/*.py
    Each plugin module must define a top-level `cli` click.Command.
    """
    plugins_path = pathlib.Path(__file__).parent / "plugins" / "cli"
    package = "fetchpubmed.plugins.cli"
    for _, module_name, _ in pkgutil.iter_modules([str(plugins_path)]):
        full_name = f"{package}.{module_name}"
        try:
            module = importlib.import_module(full_name)
            cmd = getattr(module, "cli", None)
            if isinstance(cmd, click.Command):
                main.add_command(cmd)
        except Exception as e:
            logger.error(f"Failed to load plugin {full_name}: {e}")


# Load all plugin commands
load_commands()

if __name__ == "__main__":
    main()
