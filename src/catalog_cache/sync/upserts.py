"""Upsert statements for synced tables.

Each helper writes one validated record keyed by its upstream id. Callers
own the transaction; these helpers never commit.

Conflict policy is last-write-wins from upstream: a company row is fully
overwritten (except ``created_at``) and its local ``synced_at`` refreshed.
Drift alerts are history, so only ``drift_percentage`` changes on conflict.
"""

from __future__ import annotations

from catalog_cache.core.query_builder import upsert_sql
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.text import tokenize
from catalog_cache.validation.models import (
    Company,
    DriftAlert,
    Evidence,
    ScoreBundle,
    ScoringRun,
    ServiceStat,
)

COMPANY_COLUMNS = [
    "global_company_id",
    "dataset_version",
    "name",
    "domain",
    "postal_code",
    "country_code",
    "city",
    "state",
    "region",
    "industry",
    "sector",
    "employee_count",
    "revenue_estimate",
    "final_score",
    "d_score",
    "o_score",
    "i_score",
    "m_score",
    "b_score",
    "confidence_score",
    "norm_context_version",
    "checksum",
    "risk_score",
    "feasibility_score",
    "created_at",
    "updated_at",
    "synced_at",
    "is_active",
    "tombstone_at",
]

ALIAS_COLUMNS = ["alias_id", "global_company_id", "alias", "alias_type", "created_at"]

EVIDENCE_COLUMNS = [
    "evidence_id",
    "global_company_id",
    "type",
    "title",
    "preview",
    "source_url",
    "source_name",
    "relevance_score",
    "created_at",
    "extracted_at",
    "synced_at",
]

DRIFT_COLUMNS = [
    "alert_id",
    "global_company_id",
    "metric",
    "old_value",
    "new_value",
    "drift_percentage",
    "detected_at",
    "run_id",
    "seen_at",
    "synced_at",
]

RUN_COLUMNS = [
    "run_id",
    "started_at",
    "completed_at",
    "companies_scored",
    "avg_confidence",
    "norm_context_version",
    "status",
    "error_message",
    "synced_at",
]

STAT_COLUMNS = ["stat_name", "stat_value", "unit", "measured_at", "synced_at"]

SCORE_COLUMNS = [
    "final_score",
    "d_score",
    "o_score",
    "i_score",
    "m_score",
    "b_score",
    "confidence_score",
    "norm_context_version",
    "checksum",
    "risk_score",
    "feasibility_score",
]

UPSERT_COMPANY = upsert_sql(
    "companies",
    COMPANY_COLUMNS,
    ["global_company_id"],
    update_columns=[c for c in COMPANY_COLUMNS if c not in ("global_company_id", "created_at")],
)
UPSERT_ALIAS = upsert_sql("company_aliases", ALIAS_COLUMNS, ["alias_id"])
UPSERT_EVIDENCE = upsert_sql("evidence", EVIDENCE_COLUMNS, ["evidence_id"])
UPSERT_DRIFT = upsert_sql(
    "drift_alerts", DRIFT_COLUMNS, ["alert_id"], update_columns=["drift_percentage"]
)
UPSERT_RUN = upsert_sql("scoring_runs", RUN_COLUMNS, ["run_id"])
UPSERT_STAT = upsert_sql("service_stats", STAT_COLUMNS, ["stat_name"])


def upsert_company(storage: SQLiteStorage, company: Company, synced_at: str) -> None:
    """Write a company, its embedded aliases, and its search terms."""
    row = company.model_dump(exclude={"aliases"})
    row["synced_at"] = synced_at
    row["is_active"] = 1 if company.is_active else 0
    storage.execute(UPSERT_COMPANY, [row[c] for c in COMPANY_COLUMNS])

    upsert_aliases(storage, company)
    rebuild_search_terms(storage, company)


def upsert_aliases(storage: SQLiteStorage, company: Company) -> None:
    """Replace the company's alias set with the one in the payload."""
    keep = [a.alias_id for a in company.aliases]
    if keep:
        placeholders = ", ".join("?" for _ in keep)
        storage.execute(
            f"DELETE FROM company_aliases WHERE global_company_id = ? "
            f"AND alias_id NOT IN ({placeholders})",
            [company.global_company_id, *keep],
        )
    else:
        storage.execute(
            "DELETE FROM company_aliases WHERE global_company_id = ?",
            (company.global_company_id,),
        )

    for alias in company.aliases:
        row = alias.model_dump()
        row["global_company_id"] = company.global_company_id
        storage.execute(UPSERT_ALIAS, [row[c] for c in ALIAS_COLUMNS])


def rebuild_search_terms(storage: SQLiteStorage, company: Company) -> None:
    storage.execute(
        "DELETE FROM search_terms WHERE global_company_id = ?", (company.global_company_id,)
    )
    rows = [(company.global_company_id, term, "name") for term in tokenize(company.name)]
    alias_terms: dict[str, None] = {}
    for alias in company.aliases:
        for term in tokenize(alias.alias):
            alias_terms.setdefault(term, None)
    rows.extend((company.global_company_id, term, "alias") for term in alias_terms)
    if rows:
        storage.executemany(
            "INSERT OR IGNORE INTO search_terms (global_company_id, term, source) VALUES (?, ?, ?)",
            rows,
        )


def upsert_evidence(storage: SQLiteStorage, evidence: Evidence, synced_at: str) -> None:
    row = evidence.model_dump()
    row["synced_at"] = synced_at
    storage.execute(UPSERT_EVIDENCE, [row[c] for c in EVIDENCE_COLUMNS])


def upsert_drift_alert(storage: SQLiteStorage, alert: DriftAlert, synced_at: str) -> None:
    row = alert.model_dump()
    row["synced_at"] = synced_at
    storage.execute(UPSERT_DRIFT, [row[c] for c in DRIFT_COLUMNS])


def upsert_scoring_run(storage: SQLiteStorage, run: ScoringRun, synced_at: str) -> None:
    row = run.model_dump()
    row["synced_at"] = synced_at
    storage.execute(UPSERT_RUN, [row[c] for c in RUN_COLUMNS])


def upsert_service_stat(storage: SQLiteStorage, stat: ServiceStat, synced_at: str) -> None:
    row = stat.model_dump()
    row["synced_at"] = synced_at
    storage.execute(UPSERT_STAT, [row[c] for c in STAT_COLUMNS])


def update_company_scores(
    storage: SQLiteStorage, global_company_id: str, bundle: ScoreBundle, synced_at: str
) -> bool:
    """Overwrite a cached company's score columns. False if the company is unknown."""
    row = bundle.model_dump()
    assignments = ", ".join(f"{c} = ?" for c in SCORE_COLUMNS)
    cursor = storage.execute(
        f"UPDATE companies SET {assignments}, synced_at = ? WHERE global_company_id = ?",
        [*(row[c] for c in SCORE_COLUMNS), synced_at, global_company_id],
    )
    return cursor.rowcount > 0


__all__ = [
    "COMPANY_COLUMNS",
    "upsert_company",
    "upsert_aliases",
    "rebuild_search_terms",
    "upsert_evidence",
    "upsert_drift_alert",
    "upsert_scoring_run",
    "upsert_service_stat",
    "update_company_scores",
]
