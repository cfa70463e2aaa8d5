"""
Structured predicate lists rendered to parameterized SQL.

Search filters are collected as :class:`Predicate` objects tagged with the
dimension they constrain. The statement is rendered once, at the end, with
every value bound as a parameter. Facet queries reuse the same builder with
one dimension removed via :meth:`QueryBuilder.without`.

Examples:
    >>> qb = (
    ...     QueryBuilder("companies c")
    ...     .where("c.is_active = 1")
    ...     .where("c.final_score >= ?", 0.8, dimension="score")
    ...     .where_in("c.industry", ["saas", "fintech"], dimension="industry")
    ... )
    >>> sql, params = qb.without("industry").build(select="COUNT(*)")
    >>> params
    [0.8]

Tags:
    sql, query-builder, parameterized, catalog-cache
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Predicate:
    """One ``WHERE`` term with its bound parameters."""

    sql: str
    params: tuple[Any, ...] = ()
    dimension: str | None = None


@dataclass
class QueryBuilder:
    """Accumulates predicates, ordering and paging for one ``SELECT``."""

    source: str
    predicates: list[Predicate] = field(default_factory=list)

    def where(self, sql: str, *params: Any, dimension: str | None = None) -> QueryBuilder:
        self.predicates.append(Predicate(sql, tuple(params), dimension))
        return self

    def where_in(
        self, column: str, values: Sequence[Any], *, dimension: str | None = None
    ) -> QueryBuilder:
        """``column IN (?, ?, ...)``; an empty list adds nothing."""
        if values:
            placeholders = ", ".join("?" for _ in values)
            self.where(f"{column} IN ({placeholders})", *values, dimension=dimension)
        return self

    def without(self, dimension: str) -> QueryBuilder:
        """Copy of this builder with every predicate on *dimension* removed."""
        return QueryBuilder(
            self.source,
            [p for p in self.predicates if p.dimension != dimension],
        )

    def where_clause(self) -> tuple[str, list[Any]]:
        if not self.predicates:
            return "", []
        sql = " AND ".join(p.sql for p in self.predicates)
        params = [v for p in self.predicates for v in p.params]
        return f" WHERE {sql}", params

    def build(
        self,
        *,
        select: str = "*",
        select_params: Sequence[Any] = (),
        group_by: str | None = None,
        order_by: str | None = None,
        order_params: Sequence[Any] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[str, list[Any]]:
        """Render the statement and its parameter list."""
        where, where_params = self.where_clause()
        params = [*select_params, *where_params]
        sql = f"SELECT {select} FROM {self.source}{where}"
        if group_by:
            sql += f" GROUP BY {group_by}"
        if order_by:
            sql += f" ORDER BY {order_by}"
            params.extend(order_params)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
            if offset:
                sql += " OFFSET ?"
                params.append(offset)
        return sql, params


def upsert_sql(
    table: str,
    columns: Sequence[str],
    key_columns: Sequence[str],
    *,
    update_columns: Sequence[str] | None = None,
) -> str:
    """``INSERT ... ON CONFLICT (keys) DO UPDATE SET ...``

    ``update_columns`` defaults to every non-key column.
    """
    cols = ", ".join(columns)
    placeholders = ", ".join("?" for _ in columns)
    keys = ", ".join(key_columns)
    if update_columns is None:
        update_columns = [c for c in columns if c not in key_columns]
    if not update_columns:
        return (
            f"INSERT INTO {table} ({cols}) VALUES ({placeholders}) "
            f"ON CONFLICT ({keys}) DO NOTHING"
        )
    updates = ", ".join(f"{c} = excluded.{c}" for c in update_columns)
    return (
        f"INSERT INTO {table} ({cols}) VALUES ({placeholders}) "
        f"ON CONFLICT ({keys}) DO UPDATE SET {updates}"
    )


__all__ = ["Predicate", "QueryBuilder", "upsert_sql"]
