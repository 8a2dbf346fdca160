"""
CLI: ``keel secrets``: show the secrets extracted from the configuration.
"""

from __future__ import annotations

from pathlib import Path

import typer

from keel.cli.utils import err_console, get_app, output_json, output_lines

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_secrets(
    template: bool = typer.Option(False, "--template", "-t", help="Keys only, values blanked"),
    format: str = typer.Option("json", "--format", "-f", help="Output format: json, env"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Write to a file instead of stdout"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
) -> None:
    """Show every secret key of the configuration and its value."""
    if format not in ("json", "env"):
        err_console.print(f"[red]Error:[/red] unknown format {format!r}")
        raise typer.Exit(1)

    keel_app = get_app(database)
    extracted = keel_app.modules.extract_secrets()
    keys = sorted(set(keel_app.modules.secret_keys()) | set(extracted.secrets))
    values = {key: "" if template else extracted.secrets.get(key, "") for key in keys}

    if format == "json":
        output_json(values, out=out)
        return

    prefix = keel_app.settings.secret_env_prefix
    output_lines(
        [f"{prefix}{key.replace('.', '__').upper()}={value}" for key, value in values.items()],
        out=out,
    )
