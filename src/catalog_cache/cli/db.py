"""
CLI: ``catalog-cache db``: schema migration commands.
"""

from __future__ import annotations

import typer

from catalog_cache.cli.utils import console, handle_errors, load_settings, open_storage, output_json, print_table
from catalog_cache.core.migrations import MigrationResult, MigrationRunner

app = typer.Typer(no_args_is_help=True)


def _print_result(result: MigrationResult, *, as_json: bool) -> None:
    if as_json:
        output_json(
            {"applied": result.applied, "skipped": result.skipped, "errors": result.errors}
        )
    else:
        for label in result.applied:
            console.print(f"[green]applied[/green] {label}")
        for label, error in result.errors.items():
            console.print(f"[bold red]failed[/bold red] {label}: {error}")
        if not result.applied and not result.errors:
            console.print("[dim]Schema is up to date.[/dim]")
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def migrate(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Apply pending schema migrations."""
    settings = load_settings(database)
    with handle_errors(), open_storage(settings, migrate=False) as storage:
        result = MigrationRunner(storage, environment=settings.environment).apply_pending()
    _print_result(result, as_json=json_out)


@app.command()
def status(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show applied and pending migrations."""
    settings = load_settings(database)
    with handle_errors(), open_storage(settings, migrate=False) as storage:
        info = MigrationRunner(storage, environment=settings.environment).status()

    if json_out:
        output_json(info)
        return
    console.print(
        f"Schema version [bold]{info['current_version']}[/bold] of {info['latest_version']}"
    )
    print_table(info["applied"], title="Applied")
    if info["pending"]:
        print_table(info["pending"], title="Pending")


@app.command()
def reset(
    database: str | None = typer.Option(None, "--database", "-d"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Drop every table and re-apply migrations (refused in production)."""
    settings = load_settings(database)
    if not yes:
        typer.confirm(f"Drop all cached data in {settings.db_path}?", abort=True)
    with handle_errors(), open_storage(settings, migrate=False) as storage:
        result = MigrationRunner(storage, environment=settings.environment).reset()
    _print_result(result, as_json=json_out)
