"""
CLI mirror commands — one-shot sync and file listing.

Usage:
    python -m repomirror.main sync [--mirror NAME]
    python -m repomirror.main tracked-files --mirror NAME
"""

from __future__ import annotations

from typing import List, Optional

import click

from ..models.config import MirrorConfig, ServiceConfig


def _select(config: ServiceConfig, name: Optional[str]) -> List[MirrorConfig]:
    if not config.mirrors:
        click.secho("No mirrors configured.", fg="red")
        raise SystemExit(1)
    if name is None:
        return list(config.mirrors)
    selected = [m for m in config.mirrors if m.name == name]
    if not selected:
        known = ", ".join(m.name for m in config.mirrors)
        raise click.ClickException(f"Unknown mirror '{name}' (configured: {known})")
    return selected


@click.command("sync")
@click.option("--mirror", "name", help="Only this mirror (default: all)")
@click.pass_context
def sync(ctx: click.Context, name: Optional[str]) -> None:
    """Clone or hard-reset each mirror to its remote once, then exit."""
    from ..mirror.errors import MirrorError
    from ..mirror.repository import RepositoryMirror

    failed = 0
    for mirror_config in _select(ctx.obj["config"], name):
        try:
            with RepositoryMirror(mirror_config) as mirror:
                head = mirror.engine.head_commit()
                count = len(mirror.tracked_files())
        except MirrorError as e:
            failed += 1
            click.secho(f"  ✗ {mirror_config.name}: {e}", fg="red")
            continue
        short = head[:12] if head else "(empty)"
        click.secho(f"  ✓ {mirror_config.name}", fg="green", nl=False)
        click.echo(f" — {short}, {count} tracked file(s)")

    if failed:
        raise SystemExit(1)


@click.command("tracked-files")
@click.option("--mirror", "name", help="Mirror name (required when several are configured)")
@click.pass_context
def tracked_files(ctx: click.Context, name: Optional[str]) -> None:
    """Sync one mirror and print every tracked path."""
    from ..mirror.errors import MirrorError
    from ..mirror.repository import RepositoryMirror

    selected = _select(ctx.obj["config"], name)
    if len(selected) > 1:
        raise click.ClickException("Several mirrors configured; pick one with --mirror")

    try:
        with RepositoryMirror(selected[0]) as mirror:
            files = mirror.tracked_files()
    except MirrorError as e:
        raise click.ClickException(str(e))

    for path in files:
        click.echo(path)
