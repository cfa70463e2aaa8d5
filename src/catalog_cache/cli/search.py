"""
CLI: ``catalog-cache search`` and ``catalog-cache company``: local queries.
"""

from __future__ import annotations

from typing import Any

import typer

from catalog_cache.cli.utils import (
    console,
    err_console,
    handle_errors,
    load_settings,
    open_storage,
    output_json,
    print_dict,
    print_table,
)
from catalog_cache.query.engine import QueryEngine

_RESULT_COLUMNS = ["global_company_id", "name", "region", "industry", "final_score", "risk_score"]


def search(
    query: str | None = typer.Argument(None, help="Free-text query over names and aliases"),
    region: list[str] | None = typer.Option(None, "--region", "-r", help="Region (repeatable)"),
    industry: list[str] | None = typer.Option(None, "--industry", "-i", help="Industry (repeatable)"),
    score_min: float | None = typer.Option(None, "--score-min"),
    score_max: float | None = typer.Option(None, "--score-max"),
    risk: str | None = typer.Option(None, "--risk", help="low, medium or high"),
    sort: str = typer.Option("score", "--sort", help="score, name, updated_at or relevance"),
    order: str = typer.Option("desc", "--order", help="asc or desc"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Search cached companies."""
    filters: dict[str, Any] = {
        "region": region or None,
        "industry": industry or None,
        "score_min": score_min,
        "score_max": score_max,
        "risk_level": risk,
    }
    options = {
        "q": query,
        "filters": {k: v for k, v in filters.items() if v is not None},
        "sort": sort,
        "sort_order": order,
        "limit": limit,
        "offset": offset,
    }

    settings = load_settings(database)
    with handle_errors(), open_storage(settings) as storage:
        result = QueryEngine(storage).search_companies(options)

    if json_out:
        output_json(result)
        return
    print_table(result.companies, columns=_RESULT_COLUMNS, title="Companies")
    console.print(f"\n[dim]Showing {len(result.companies)} of {result.total} (offset {offset})[/dim]")
    for facet, buckets in result.facets.items():
        counts = ", ".join(f"{b['bucket_label']}={b['count']}" for b in buckets if b["count"])
        console.print(f"[cyan]{facet}[/cyan]: {counts or '-'}")


def company(
    global_company_id: str = typer.Argument(..., help="Global company ID"),
    user: str | None = typer.Option(None, "--user", "-u", help="Include this user's overlay"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one cached company with aliases, evidence and drift."""
    settings = load_settings(database)
    with handle_errors(), open_storage(settings) as storage:
        detail = QueryEngine(storage).get_company_detail(global_company_id, user_id=user)

    if detail is None:
        err_console.print(f"[bold red]Error[/bold red]: company {global_company_id!r} is not cached")
        raise typer.Exit(code=1)

    if json_out:
        output_json(detail)
        return
    print_dict(detail.company, title=detail.company["name"])
    console.print(f"  [cyan]trustworthy[/cyan]: {detail.is_trustworthy}")
    if detail.aliases:
        console.print(f"  [cyan]aliases[/cyan]: {', '.join(a['alias'] for a in detail.aliases)}")
    print_table(detail.evidence, columns=["evidence_id", "type", "title", "created_at"], title="Evidence")
    print_table(detail.drift_alerts, columns=["alert_id", "metric", "drift_percentage", "detected_at"], title="Drift")
    if user:
        tags = ", ".join(detail.bookmark_tags) or "-"
        console.print(f"\nBookmarked: {detail.is_bookmarked} (tags: {tags})")
        print_table(detail.user_notes, columns=["note_id", "content", "updated_at"], title="Notes")
