"""
CLI: ``spotcheck config`` — configuration inspection.
"""

from __future__ import annotations

import typer
from rich.table import Table

from spotcheck.cli.utils import console, fail

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the effective settings (env vars and .env applied)."""
    from pydantic import ValidationError

    from spotcheck.core.settings import get_settings

    try:
        settings = get_settings(_force_reload=True)
    except ValidationError as e:
        fail(f"invalid configuration\n{e}")

    if json_out:
        console.print_json(settings.model_dump_json())
        return

    table = Table(title="spotcheck settings")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_column("Env var", style="dim")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value), f"SPOTCHECK_{key.upper()}")
    console.print(table)
