"""
CLI utility helpers: output formatting and storage management.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from catalog_cache.core.errors import CatalogError
from catalog_cache.core.logging import configure_logging
from catalog_cache.core.migrations import MigrationRunner
from catalog_cache.core.settings import CatalogSettings, get_settings
from catalog_cache.core.storage import SQLiteStorage

console = Console()
err_console = Console(stderr=True)


# ── Settings / storage helpers ───────────────────────────────────────────


def load_settings(database: str | None = None) -> CatalogSettings:
    """Process settings, with ``--database`` overriding ``CATALOG_DB_PATH``."""
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"db_path": database})
    configure_logging(settings.log_level, json_format=settings.json_logs)
    return settings


@contextmanager
def open_storage(settings: CatalogSettings, *, migrate: bool = True) -> Iterator[SQLiteStorage]:
    """Connected storage for one command, migrated unless told otherwise."""
    with SQLiteStorage(settings.db_path) as storage:
        if migrate:
            MigrationRunner(storage, environment=settings.environment).apply_pending()
        yield storage


@contextmanager
def handle_errors() -> Iterator[None]:
    """Print a ``CatalogError`` and exit non-zero instead of a traceback."""
    try:
        yield
    except CatalogError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_json(data: Any) -> None:
    if isinstance(data, list | tuple):
        payload: Any = [_to_dict(d) for d in data]
    else:
        payload = _to_dict(data)
    console.print_json(json.dumps(payload, default=str))


def print_table(items: list, *, columns: list[str] | None = None, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    rows = [_to_dict(item) for item in items]
    columns = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in columns))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
