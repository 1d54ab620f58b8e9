"""
Repo Mirror — CLI Entry Point

Usage:
    python -m repomirror.main serve [--config FILE]
    python -m repomirror.main sync [--mirror NAME]
    python -m repomirror.main tracked-files --mirror NAME
    python -m repomirror.main check-config [--json]
    python -m repomirror.main generate-config [--output FILE]
"""

from __future__ import annotations

# Load .env FIRST, before anything reads REPOMIRROR_* or LOG_* vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import asyncio
from typing import Optional

import click

from .cli.config import check_config, generate_config
from .cli.mirror import sync, tracked_files
from .config.loader import load_config
from .logging_config import setup_logging
from .mirror.errors import ConfigurationError, MirrorError


@click.group()
@click.option("--config", "config_file", type=click.Path(path_type=Path), help="JSON config file")
@click.option("--log-level", help="DEBUG, INFO, WARNING or ERROR (default: LOG_LEVEL or INFO)")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[Path], log_level: Optional[str]) -> None:
    """Repo Mirror — keep local working copies equal to their remotes."""
    setup_logging(level=log_level)
    ctx.ensure_object(dict)
    if ctx.invoked_subcommand == "generate-config":
        return
    try:
        ctx.obj["config"] = load_config(config_file)
    except ConfigurationError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Establish every mirror and listen for push triggers until stopped."""
    from .service import MirrorService

    config = ctx.obj["config"]
    if not config.mirrors:
        click.secho("No mirrors configured.", fg="red")
        click.echo("  → python -m repomirror.main generate-config")
        raise SystemExit(1)

    service = MirrorService(config)
    try:
        asyncio.run(service.run())
    except MirrorError as e:
        raise click.ClickException(str(e))
    except OSError as e:
        raise click.ClickException(f"Could not start listener: {e}")


cli.add_command(sync)
cli.add_command(tracked_files)
cli.add_command(check_config)
cli.add_command(generate_config)


if __name__ == "__main__":
    cli()
