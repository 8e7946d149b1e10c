"""
CLI: ``spotcheck queue`` — inspect the offline write queue.
"""

from __future__ import annotations

import typer

from spotcheck.cli.utils import console, open_store, output
from spotcheck.resilience.offline_queue import OfflineQueue

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_items(
    database: str | None = typer.Option(None, "--db", "-d", help="SQLite store path"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List pending offline writes in replay order."""
    store = open_store(database)
    try:
        items = OfflineQueue(store).items()
        rows = [
            {
                "id": item.id,
                "kind": item.kind.value,
                "enqueued_at": item.enqueued_at.isoformat(),
                "attempts": item.attempts,
            }
            for item in items
        ]
        output(rows, as_json=json_out, title="Offline Queue")
    finally:
        store.close()


@app.command("clear")
def clear_items(
    database: str | None = typer.Option(None, "--db", "-d", help="SQLite store path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Drop every pending offline write."""
    store = open_store(database)
    try:
        queue = OfflineQueue(store)
        pending = len(queue)
        if not pending:
            console.print("[dim]Queue is empty.[/dim]")
            return
        if not yes and not typer.confirm(f"Discard {pending} pending item(s)?"):
            raise typer.Abort()
        queue.clear()
        console.print(f"[green]Cleared {pending} item(s).[/green]")
    finally:
        store.close()
