"""
Root Typer application for the spotcheck CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="spotcheck",
    help="spotcheck — resilience and location-trust toolkit for the challenge game client.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("spotcheck")
        except PackageNotFoundError:
            from spotcheck import __version__ as v
        typer.echo(f"spotcheck {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for structured logs."),
) -> None:
    """spotcheck CLI — geo checks, offline queue and configuration."""
    from spotcheck.core.logging import configure_logging

    configure_logging(level=log_level, json_format=False)


# ── Sub-command registration ─────────────────────────────────────────────

from spotcheck.cli.config import app as config_app  # noqa: E402
from spotcheck.cli.geo import app as geo_app  # noqa: E402
from spotcheck.cli.queue import app as queue_app  # noqa: E402

app.add_typer(geo_app, name="geo", help="Distance and check-in verification.")
app.add_typer(queue_app, name="queue", help="Offline write queue.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
