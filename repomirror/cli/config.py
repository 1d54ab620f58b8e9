"""
CLI config commands — configuration checking and template generation.

Usage:
    python -m repomirror.main check-config [--json]
    python -m repomirror.main generate-config [--output FILE]
"""

from __future__ import annotations

import click


@click.command("check-config")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check_config(ctx: click.Context, as_json: bool) -> None:
    """Check every configured mirror without touching the network."""
    import json as json_lib

    from ..config.validator import validate_all

    results = validate_all(ctx.obj["config"])
    broken = [s for s in results.values() if not s.configured]

    if as_json:
        click.echo(json_lib.dumps(
            {name: status.to_dict() for name, status in sorted(results.items())},
            indent=2,
        ))
        if broken:
            raise SystemExit(1)
        return

    if not results:
        click.secho("No mirrors configured.", fg="yellow")
        click.echo("  → python -m repomirror.main generate-config")
        raise SystemExit(1)

    click.echo("\nMirror Configuration Status\n")
    for name, status in sorted(results.items()):
        if status.configured:
            click.secho(f"  ✓ {name}", fg="green", nl=False)
            click.echo(f" — {status.mode} on startup")
        else:
            click.secho(f"  ✗ {name}", fg="red")
            for problem in status.problems:
                click.echo(f"      {problem}")
        for note in status.notes:
            click.secho(f"      note: {note}", fg="yellow")

    click.echo()
    click.secho(
        f"Summary: {len(results) - len(broken)} ready, {len(broken)} with problems",
        bold=True,
    )
    if broken:
        raise SystemExit(1)


@click.command("generate-config")
@click.option("--output", "-o", help="Output file (default: stdout)")
def generate_config(output: str) -> None:
    """Generate a config.json / REPOMIRROR_CONFIG template."""
    from ..config.loader import generate_config_template

    template = generate_config_template()

    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(template + "\n")
        click.secho(f"Template written to {output}", fg="green")
        click.echo("Edit the remote, path, port and token, then run check-config.")
    else:
        click.echo(template)
