"""
Root Typer application for the catalog-cache CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="catalog-cache",
    help="catalog-cache: a local, searchable cache of the remote company catalog.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from catalog_cache import __version__

        typer.echo(f"catalog-cache {__version__}")
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
) -> None:
    """catalog-cache CLI: migrate, sync and query the local cache."""


# ── Sub-command registration ─────────────────────────────────────────────

from catalog_cache.cli.db import app as db_app  # noqa: E402
from catalog_cache.cli.search import company, search  # noqa: E402
from catalog_cache.cli.sync import app as sync_app  # noqa: E402

app.add_typer(db_app, name="db", help="Schema migrations.")
app.add_typer(sync_app, name="sync", help="Sync passes and sync state.")
app.command("search")(search)
app.command("company")(company)
