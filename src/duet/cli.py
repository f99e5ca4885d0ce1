"""Root CLI group and version flag."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from duet import __version__
from duet.commands.sessions import ls, new, rm, send, show
from duet.config import ConfigError, load_config

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="duet")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to duet.yaml (default: ./duet.yaml if present).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """duet — run claude and codex sessions behind one event stream."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format=_LOG_FORMAT)
    elif config.log_level is not None:
        logging.basicConfig(level=config.log_level, format=_LOG_FORMAT)

    ctx.obj = config


cli.add_command(new)
cli.add_command(ls)
cli.add_command(show)
cli.add_command(send)
cli.add_command(rm)
