"""
CLI utility helpers: consoles, output formatting, error exits.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from synthspine.core.errors import SynthesisError
from synthspine.core.models import Event

console = Console()
err_console = Console(stderr=True)


# ── Error exits ──────────────────────────────────────────────────────────


def fail(error: SynthesisError | str, code: int = 1) -> typer.Exit:
    """Print an error to stderr and return the ``typer.Exit`` to raise."""
    if isinstance(error, SynthesisError):
        source = error.context.source_file
        where = f" [dim]({source})[/dim]" if source else ""
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}{where}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    return typer.Exit(code=code)


# ── Input ────────────────────────────────────────────────────────────────


def read_events(path: Path) -> Iterator[Event]:
    """Yield events from a JSON-lines file; blank lines and ``#`` comments are skipped."""
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            text = line.strip()
            if not text or text.startswith("#"):
                continue
            try:
                yield Event.from_dict(json.loads(text))
            except (json.JSONDecodeError, ValueError) as e:
                raise fail(f"{path.name}:{lineno}: {e}") from e


# ── Output ───────────────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def _cell(value: Any) -> str:
    if value is None:
        return "[dim]-[/dim]"
    if isinstance(value, dict):
        return ", ".join(f"{k}={v}" for k, v in value.items()) or "[dim]-[/dim]"
    if isinstance(value, list | tuple):
        return ", ".join(str(v) for v in value) or "[dim]-[/dim]"
    return str(value)


def print_table(rows: list[dict[str, Any]], *, title: str = "", columns: list[str] | None = None) -> None:
    """Render a list of dicts as a rich table."""
    if not rows:
        console.print(f"[dim]No {title.lower() or 'items'}.[/dim]")
        return
    columns = columns or list(rows[0].keys())
    table = Table(title=title, show_lines=False)
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*(_cell(row.get(col)) for col in columns))
    console.print(table)


def print_kv(data: dict[str, Any], *, title: str = "") -> None:
    table = Table(title=title, show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, _cell(value))
    console.print(table)
