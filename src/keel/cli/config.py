"""
CLI: ``keel config``: show the module configuration.
"""

from __future__ import annotations

from pathlib import Path

import typer

from keel.cli.utils import get_app, output_json

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    secrets: bool = typer.Option(False, "--secrets", "-s", help="Include secret values"),
    default: bool = typer.Option(False, "--default", help="Show the built-in defaults instead"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Write to a file instead of stdout"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
) -> None:
    """Show the current configuration tree."""
    if default:
        from keel.modules.registry import default_config

        output_json(default_config(), out=out)
        return

    keel_app = get_app(database)
    output_json(keel_app.to_json(include_secrets=secrets), out=out)


@app.command("schema")
def show_schema(
    out: Path | None = typer.Option(None, "--out", "-o", help="Write to a file instead of stdout"),
) -> None:
    """Show the JSON schema of every module."""
    from keel.modules.registry import default_schema

    output_json(default_schema(), out=out)
