"""Facet bucket materialization.

Facet rows are derived entirely from active companies and are regenerated
wholesale: every rebuild deletes all rows and recomputes them in a single
transaction. Running it twice in a row produces the same rows.
"""

from __future__ import annotations

from catalog_cache.core.buckets import RISK_LEVELS, SCORE_RANGES, Bucket
from catalog_cache.core.logging import get_logger
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.timestamps import Clock, to_iso8601, utc_now

logger = get_logger(__name__)

FACET_TYPES = ("region", "industry", "score_range", "risk_level")

_INSERT = (
    "INSERT INTO facet_buckets "
    "(facet_type, bucket_value, bucket_label, count, dataset_version, updated_at) "
    "VALUES (?, ?, ?, ?, ?, ?)"
)


def _count_in(storage: SQLiteStorage, column: str, bucket: Bucket) -> int:
    sql, params = bucket.predicate(column)
    return storage.scalar(
        f"SELECT COUNT(*) FROM companies WHERE is_active = 1 AND {sql}", params
    )


def materialize_facets(storage: SQLiteStorage, clock: Clock = utc_now) -> dict[str, int]:
    """Rebuild ``facet_buckets`` from active companies.

    Returns:
        Number of buckets written per facet type.
    """
    now = to_iso8601(clock())
    written: dict[str, int] = {}

    with storage.transaction():
        storage.execute("DELETE FROM facet_buckets")
        dataset_version = storage.scalar(
            "SELECT MAX(dataset_version) FROM companies WHERE is_active = 1"
        )

        for column in ("region", "industry"):
            rows = storage.query(
                f"SELECT {column} AS value, COUNT(*) AS count FROM companies "
                f"WHERE is_active = 1 AND {column} IS NOT NULL "
                f"GROUP BY {column}"
            )
            storage.executemany(
                _INSERT,
                [
                    (column, r["value"], r["value"], r["count"], dataset_version, now)
                    for r in rows
                ],
            )
            written[column] = len(rows)

        storage.executemany(
            _INSERT,
            [
                ("score_range", b.value, b.label, _count_in(storage, "final_score", b), dataset_version, now)
                for b in SCORE_RANGES
            ],
        )
        written["score_range"] = len(SCORE_RANGES)

        storage.executemany(
            _INSERT,
            [
                ("risk_level", b.value, b.label, _count_in(storage, "risk_score", b), dataset_version, now)
                for b in RISK_LEVELS.values()
            ],
        )
        written["risk_level"] = len(RISK_LEVELS)

    logger.info("sync.facets_materialized", dataset_version=dataset_version, **written)
    return written


def load_facets(storage: SQLiteStorage) -> dict[str, list[dict]]:
    """Stored buckets grouped by facet type, largest first."""
    facets: dict[str, list[dict]] = {t: [] for t in FACET_TYPES}
    rows = storage.query(
        "SELECT facet_type, bucket_value, bucket_label, count, dataset_version, updated_at "
        "FROM facet_buckets ORDER BY facet_type, count DESC, bucket_value"
    )
    for row in rows:
        facets.setdefault(row["facet_type"], []).append(row)
    return facets


__all__ = ["FACET_TYPES", "materialize_facets", "load_facets"]
