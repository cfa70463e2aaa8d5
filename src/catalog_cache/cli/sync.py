"""
CLI: ``catalog-cache sync``: run sync passes and inspect their state.
"""

from __future__ import annotations

import asyncio

import typer

from catalog_cache.cli.utils import (
    console,
    handle_errors,
    load_settings,
    open_storage,
    output_json,
    print_table,
)
from catalog_cache.client.endpoints import CatalogClient
from catalog_cache.core.settings import CatalogSettings
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.sync.engine import SyncEngine, SyncSummary
from catalog_cache.sync.state import SyncStateStore

app = typer.Typer(no_args_is_help=True)

_STATUS_COLUMNS = [
    "resource_type",
    "sync_status",
    "last_sync_at",
    "records_synced",
    "last_cursor",
    "error_message",
]


async def _run(
    storage: SQLiteStorage,
    settings: CatalogSettings,
    *,
    full: bool,
    evidence: bool,
    runs: bool,
    stats: bool,
) -> SyncSummary:
    async with CatalogClient.from_settings(settings) as client:
        engine = SyncEngine(storage, client, settings)
        return await engine.sync_universal_catalog(
            force_full_sync=full,
            sync_evidence=evidence,
            sync_runs=runs,
            sync_stats=stats,
        )


@app.command("run")
def run(
    full: bool = typer.Option(False, "--full", help="Ignore cursor, ETag and updated_since"),
    evidence: bool = typer.Option(False, "--evidence", help="Also sync evidence"),
    runs: bool = typer.Option(False, "--runs", help="Also sync scoring runs"),
    stats: bool = typer.Option(False, "--stats", help="Also sync service stats"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Sync the local cache with the remote catalog."""
    settings = load_settings(database)
    with handle_errors(), open_storage(settings) as storage:
        summary = asyncio.run(
            _run(storage, settings, full=full, evidence=evidence, runs=runs, stats=stats)
        )

    if json_out:
        output_json(summary)
        return
    passes = [p for p in (summary.companies, summary.evidence, summary.drift, summary.runs, summary.stats) if p]
    print_table(
        passes,
        columns=["resource", "records_synced", "errors", "pages", "not_modified"],
        title="Sync passes",
    )
    console.print(f"\n[dim]Completed in {summary.duration_seconds:.2f}s[/dim]")


@app.command("status")
def status(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the sync state of every resource."""
    settings = load_settings(database)
    with handle_errors(), open_storage(settings) as storage:
        store = SyncStateStore(storage, lock_ttl_seconds=settings.sync_lock_ttl_seconds)
        info = store.status_report(settings.freshness_window_seconds)

    if json_out:
        output_json(info)
        return
    print_table(list(info["resources"].values()), columns=_STATUS_COLUMNS, title="Sync state")
    label = "[yellow]stale[/yellow]" if info["is_stale"] else "[green]fresh[/green]"
    console.print(f"\nCompanies are {label}")
