"""
CLI: ``keel history``: list stored configuration rows.
"""

from __future__ import annotations

import typer
from rich.table import Table

from keel.cli.utils import console, err_console, get_app
from keel.core.orm import ConfigType


def show_history(
    row_types: list[str] | None = typer.Option(None, "--type", "-t", help="Row type: config, diff, backup, secrets"),
    version: int | None = typer.Option(None, "--version", "-v", help="Only rows of this version"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows shown"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
) -> None:
    """List configuration history, newest first."""
    try:
        types = [ConfigType(t) for t in row_types] if row_types else None
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    keel_app = get_app(database)
    rows = keel_app.modules.store.history(types, version)[:limit]
    if not rows:
        console.print("[dim]No history.[/dim]")
        return

    table = Table(title=f"Configuration history (current version {keel_app.version()})")
    table.add_column("ID", justify="right")
    table.add_column("Version", justify="right")
    table.add_column("Type")
    table.add_column("Created")
    table.add_column("Summary", overflow="fold")
    for row in rows:
        table.add_row(
            str(row.id),
            str(row.version),
            row.type.value,
            row.created_at.isoformat(timespec="seconds") if row.created_at else "",
            _summary(row.type, row.json),
        )
    console.print(table)


def _summary(kind: ConfigType, payload: object) -> str:
    if kind == ConfigType.DIFF and isinstance(payload, list):
        return ", ".join(f"{d.get('t')} {'.'.join(map(str, d.get('p', [])))}" for d in payload)
    if kind == ConfigType.SECRETS and isinstance(payload, dict):
        return f"{len(payload)} key(s)"
    if isinstance(payload, dict):
        return ", ".join(sorted(payload))
    return ""
