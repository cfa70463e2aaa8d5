"""
Local company search with facets.

Search runs entirely against the local cache: free-text tokens are matched
against the precomputed ``search_terms`` index (name and alias tokens),
structured filters narrow the set, and facet counts are computed with the
same filters minus the facet's own dimension, so a facet lists what else
is available rather than collapsing to the selected value.

Architecture:
    ::

        SearchOptions ──validate──► build_search_query() ─► QueryBuilder
                                          │
             ┌────────────────────────────┼──────────────────────────┐
             ▼                            ▼                          ▼
        COUNT(*)                    page of rows               facet queries
                                 (sort + limit/offset)   qb.without(dimension)

    Dimensions: ``q``, ``region``, ``industry``, ``score_range``,
    ``employee_count``, ``risk_level``, ``trust``.

Examples:
    >>> result = search_companies(storage, {"q": "acme", "filters": {"score_min": 0.8}})
    >>> result.total, [b["bucket_value"] for b in result.facets["industry"]]

Tags:
    search, facets, query-builder, catalog-cache
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from catalog_cache.core.buckets import RISK_LEVELS, SCORE_RANGES, case_expression
from catalog_cache.core.logging import get_logger
from catalog_cache.core.query_builder import QueryBuilder
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.text import tokenize
from catalog_cache.validation.models import DETERMINISM_FIELDS, SearchOptions
from catalog_cache.validation.parse import validate, validate_determinism_fields

logger = get_logger(__name__)


@dataclass
class SearchResult:
    companies: list[dict[str, Any]]
    total: int
    facets: dict[str, list[dict[str, Any]]] = field(default_factory=dict)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def company_row(row: dict[str, Any]) -> dict[str, Any]:
    """Storage row as returned to callers."""
    row = dict(row)
    row.pop("id", None)
    row["is_active"] = bool(row.get("is_active"))
    row["is_trustworthy"] = validate_determinism_fields(row)
    return row


def build_search_query(options: SearchOptions) -> QueryBuilder:
    """Predicates for *options*, each tagged with its dimension."""
    qb = QueryBuilder("companies c").where("c.is_active = 1")

    tokens = tokenize(options.q)
    if options.q and options.q.strip() and not tokens:
        # nothing searchable in q, so nothing matches
        qb.where("0", dimension="q")
    for token in tokens:
        qb.where(
            "c.global_company_id IN "
            "(SELECT t.global_company_id FROM search_terms t WHERE t.term LIKE ? ESCAPE '\\')",
            f"{_escape_like(token)}%",
            dimension="q",
        )

    f = options.filters
    qb.where_in("c.region", f.region or [], dimension="region")
    qb.where_in("c.industry", f.industry or [], dimension="industry")

    if f.score_min is not None:
        qb.where("c.final_score >= ?", f.score_min, dimension="score_range")
    if f.score_max is not None:
        qb.where("c.final_score <= ?", f.score_max, dimension="score_range")

    if f.employee_count_min is not None:
        qb.where("c.employee_count >= ?", f.employee_count_min, dimension="employee_count")
    if f.employee_count_max is not None:
        qb.where("c.employee_count <= ?", f.employee_count_max, dimension="employee_count")

    if f.risk_level is not None:
        sql, params = RISK_LEVELS[f.risk_level].predicate("c.risk_score")
        qb.where(f"({sql})", *params, dimension="risk_level")

    if f.trustworthy_only:
        checks = " AND ".join(f"c.{name} IS NOT NULL AND c.{name} != ''" for name in DETERMINISM_FIELDS)
        qb.where(f"({checks})", dimension="trust")

    return qb


def _order_by(options: SearchOptions) -> tuple[str, list[Any]]:
    direction = "ASC" if options.sort_order == "asc" else "DESC"

    if options.sort == "name":
        return f"c.name COLLATE NOCASE {direction}, c.global_company_id", []
    if options.sort == "updated_at":
        return f"c.updated_at {direction}, c.global_company_id", []

    query = (options.q or "").strip().casefold()
    if options.sort == "relevance" and query:
        # exact name, then name prefix, then any other match
        rank_direction = "ASC" if direction == "DESC" else "DESC"
        return (
            "CASE WHEN lower(c.name) = ? THEN 0 "
            "WHEN lower(c.name) LIKE ? ESCAPE '\\' THEN 1 ELSE 2 END "
            f"{rank_direction}, c.final_score DESC, c.global_company_id",
            [query, f"{_escape_like(query)}%"],
        )
    return f"c.final_score {direction}, c.global_company_id", []


def _value_facet(storage: SQLiteStorage, qb: QueryBuilder, column: str) -> list[dict[str, Any]]:
    sql, params = qb.without(column).where(f"c.{column} IS NOT NULL").build(
        select=f"c.{column} AS bucket_value, COUNT(*) AS count",
        group_by=f"c.{column}",
        order_by="count DESC, bucket_value",
    )
    return [
        {"bucket_value": r["bucket_value"], "bucket_label": r["bucket_value"], "count": r["count"]}
        for r in storage.query(sql, params)
    ]


def _bucket_facet(
    storage: SQLiteStorage, qb: QueryBuilder, dimension: str, column: str, buckets: list
) -> list[dict[str, Any]]:
    case_sql, case_params = case_expression(f"c.{column}", buckets)
    sql, params = qb.without(dimension).build(
        select=f"{case_sql} AS bucket_value, COUNT(*) AS count",
        select_params=case_params,
        group_by="bucket_value",
    )
    counts = {r["bucket_value"]: r["count"] for r in storage.query(sql, params)}
    return [
        {"bucket_value": b.value, "bucket_label": b.label, "count": counts.get(b.value, 0)}
        for b in buckets
    ]


def compute_facets(storage: SQLiteStorage, qb: QueryBuilder) -> dict[str, list[dict[str, Any]]]:
    """Facet counts for every dimension, each ignoring its own filter."""
    return {
        "region": _value_facet(storage, qb, "region"),
        "industry": _value_facet(storage, qb, "industry"),
        "score_range": _bucket_facet(storage, qb, "score_range", "final_score", list(SCORE_RANGES)),
        "risk_level": _bucket_facet(storage, qb, "risk_level", "risk_score", list(RISK_LEVELS.values())),
    }


def search_companies(
    storage: SQLiteStorage,
    options: SearchOptions | Mapping[str, Any] | None = None,
) -> SearchResult:
    """Search active companies.

    Raises:
        ValidationError: malformed options or filters
    """
    options = validate(SearchOptions, options or {})
    qb = build_search_query(options)

    count_sql, count_params = qb.build(select="COUNT(*)")
    total = storage.scalar(count_sql, count_params) or 0

    order_by, order_params = _order_by(options)
    sql, params = qb.build(
        select="c.*",
        order_by=order_by,
        order_params=order_params,
        limit=options.limit,
        offset=options.offset,
    )
    companies = [company_row(r) for r in storage.query(sql, params)]

    facets = compute_facets(storage, qb)
    logger.debug("query.search", q=options.q, total=total, returned=len(companies))
    return SearchResult(companies=companies, total=total, facets=facets)


__all__ = [
    "SearchResult",
    "build_search_query",
    "company_row",
    "compute_facets",
    "search_companies",
]
