"""
Root Typer application for the keel CLI.

Every command builds the application from ``KEEL_*`` settings (or the
``--database`` option) and reads from the running configuration.
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from keel.cli import config, history, secrets
from keel.core.config import get_settings
from keel.core.logging import configure_logging

app = Typer(
    name="keel",
    help="keel: versioned module configuration for a running application.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("keel-core")
        except PackageNotFoundError:
            v = "unknown"
        typer.echo(f"keel-core {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log engine events at debug level."),
) -> None:
    """keel: versioned module configuration."""
    settings = get_settings()
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=settings.log_format == "json",
        stream=sys.stderr,
    )


app.add_typer(config.app, name="config", help="Show the module configuration")
app.add_typer(secrets.app, name="secrets", help="Show extracted secrets")
app.command("history")(history.show_history)


if __name__ == "__main__":
    app()
