"""
CLI utility helpers: building the app and writing output.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from keel.app import App
from keel.core.config import get_settings
from keel.core.errors import KeelError

console = Console()
err_console = Console(stderr=True)


def get_app(database: str | None = None) -> App:
    """Build an :class:`App` against ``database`` or ``KEEL_DATABASE_URL``."""
    settings = get_settings()
    app = App(database or settings.database_url, settings=settings)
    try:
        asyncio.run(app.build())
    except KeelError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=1) from e
    return app


def output_json(data: Any, *, out: Path | None = None) -> None:
    """Print ``data`` as JSON, or write it to ``out``."""
    text = json.dumps(data, indent=2, default=str)
    if out is not None:
        out.write_text(text + "\n")
        console.print(f"[green]✓[/green] Wrote {out}")
        return
    console.print_json(text)


def output_lines(lines: list[str], *, out: Path | None = None) -> None:
    if out is not None:
        out.write_text("\n".join(lines) + "\n")
        console.print(f"[green]✓[/green] Wrote {out}")
        return
    for line in lines:
        typer.echo(line)
