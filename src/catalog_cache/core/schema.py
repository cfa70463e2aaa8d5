"""
Local schema for the catalog cache.

Defines table names and DDL statements for every table the cache owns:
synced catalog tables (written only by the sync engine), derived facet
buckets, per-resource sync state, and user overlay tables (written only by
the query engine).

Architecture:
    ::

        Table Registry (CATALOG_TABLES):
        ┌────────────────────────────────────────────────────────────┐
        │ Synced        companies, company_aliases, evidence,        │
        │               drift_alerts, scoring_runs, service_stats    │
        │ Derived       search_terms, facet_buckets                  │
        │ Coordination  sync_state                                   │
        │ Overlay       workspace_bookmarks, workspace_comparisons,  │
        │               workspace_notes, search_history              │
        └────────────────────────────────────────────────────────────┘

    All timestamps are UTC ISO-8601 text. Booleans are stored as 0/1.
    JSON-valued columns (bookmark tags, comparison ids, search filters)
    are stored as text.

Examples:
    >>> from catalog_cache.core.schema import CATALOG_TABLES
    >>> CATALOG_TABLES["companies"]
    'companies'

Tags:
    schema, ddl, sqlite, catalog-cache
"""

from __future__ import annotations

from catalog_cache.core.storage import SQLiteStorage

CATALOG_TABLES = {
    "companies": "companies",
    "company_aliases": "company_aliases",
    "search_terms": "search_terms",
    "evidence": "evidence",
    "drift_alerts": "drift_alerts",
    "scoring_runs": "scoring_runs",
    "service_stats": "service_stats",
    "facet_buckets": "facet_buckets",
    "sync_state": "sync_state",
    "workspace_bookmarks": "workspace_bookmarks",
    "workspace_comparisons": "workspace_comparisons",
    "workspace_notes": "workspace_notes",
    "search_history": "search_history",
}

SYNC_RESOURCES = ("companies", "evidence", "scores", "runs", "drift", "stats")


CATALOG_DDL = {
    "companies": """
        CREATE TABLE IF NOT EXISTS companies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            global_company_id TEXT NOT NULL UNIQUE,
            dataset_version TEXT,
            name TEXT NOT NULL,
            domain TEXT,
            postal_code TEXT,
            country_code TEXT,
            city TEXT,
            state TEXT,
            region TEXT,
            industry TEXT,
            sector TEXT,
            employee_count INTEGER,
            revenue_estimate REAL,
            final_score REAL,
            d_score REAL,
            o_score REAL,
            i_score REAL,
            m_score REAL,
            b_score REAL,
            confidence_score REAL,
            norm_context_version TEXT,
            checksum TEXT,
            risk_score REAL,
            feasibility_score REAL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            synced_at TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            tombstone_at TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_companies_region ON companies(region);
        CREATE INDEX IF NOT EXISTS idx_companies_industry ON companies(industry);
        CREATE INDEX IF NOT EXISTS idx_companies_final_score ON companies(final_score);
        CREATE INDEX IF NOT EXISTS idx_companies_synced_at ON companies(synced_at);
        CREATE INDEX IF NOT EXISTS idx_companies_active ON companies(is_active);
    """,
    "company_aliases": """
        CREATE TABLE IF NOT EXISTS company_aliases (
            alias_id TEXT PRIMARY KEY,
            global_company_id TEXT NOT NULL
                REFERENCES companies(global_company_id) ON DELETE CASCADE,
            alias TEXT NOT NULL,
            alias_type TEXT NOT NULL
                CHECK (alias_type IN ('legal', 'dba', 'brand', 'former', 'other')),
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_aliases_company ON company_aliases(global_company_id);
    """,
    "evidence": """
        CREATE TABLE IF NOT EXISTS evidence (
            evidence_id TEXT PRIMARY KEY,
            global_company_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            preview TEXT NOT NULL,
            source_url TEXT,
            source_name TEXT,
            relevance_score REAL,
            created_at TEXT NOT NULL,
            extracted_at TEXT,
            synced_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_evidence_company
            ON evidence(global_company_id, created_at);
    """,
    "drift_alerts": """
        CREATE TABLE IF NOT EXISTS drift_alerts (
            alert_id TEXT PRIMARY KEY,
            global_company_id TEXT NOT NULL,
            metric TEXT NOT NULL,
            old_value REAL NOT NULL,
            new_value REAL NOT NULL,
            drift_percentage REAL NOT NULL,
            detected_at TEXT NOT NULL,
            run_id TEXT NOT NULL,
            seen_at TEXT,
            synced_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_drift_company
            ON drift_alerts(global_company_id, detected_at);
    """,
    "scoring_runs": """
        CREATE TABLE IF NOT EXISTS scoring_runs (
            run_id TEXT PRIMARY KEY,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            companies_scored INTEGER NOT NULL,
            avg_confidence REAL NOT NULL,
            norm_context_version TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('running', 'completed', 'failed')),
            error_message TEXT,
            synced_at TEXT NOT NULL
        );
    """,
    "service_stats": """
        CREATE TABLE IF NOT EXISTS service_stats (
            stat_name TEXT PRIMARY KEY,
            stat_value REAL NOT NULL,
            unit TEXT,
            measured_at TEXT NOT NULL,
            synced_at TEXT NOT NULL
        );
    """,
    "facet_buckets": """
        CREATE TABLE IF NOT EXISTS facet_buckets (
            facet_type TEXT NOT NULL,
            bucket_value TEXT NOT NULL,
            bucket_label TEXT NOT NULL,
            count INTEGER NOT NULL,
            dataset_version TEXT,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (facet_type, bucket_value)
        );
    """,
    "sync_state": """
        CREATE TABLE IF NOT EXISTS sync_state (
            resource_type TEXT PRIMARY KEY,
            last_sync_at TEXT,
            last_etag TEXT,
            last_cursor TEXT,
            sync_status TEXT NOT NULL DEFAULT 'pending'
                CHECK (sync_status IN ('pending', 'syncing', 'success', 'error')),
            error_message TEXT,
            records_synced INTEGER NOT NULL DEFAULT 0,
            started_at TEXT,
            updated_at TEXT NOT NULL
        );
    """,
    "workspace_bookmarks": """
        CREATE TABLE IF NOT EXISTS workspace_bookmarks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            org_id TEXT,
            global_company_id TEXT NOT NULL,
            tags TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (user_id, global_company_id)
        );
    """,
    "workspace_comparisons": """
        CREATE TABLE IF NOT EXISTS workspace_comparisons (
            comparison_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            org_id TEXT,
            name TEXT NOT NULL,
            company_ids TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_comparisons_user ON workspace_comparisons(user_id);
    """,
    "workspace_notes": """
        CREATE TABLE IF NOT EXISTS workspace_notes (
            note_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            org_id TEXT,
            global_company_id TEXT NOT NULL,
            content TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_notes_user_company
            ON workspace_notes(user_id, global_company_id);
    """,
    "search_history": """
        CREATE TABLE IF NOT EXISTS search_history (
            search_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            org_id TEXT,
            query TEXT NOT NULL,
            filters TEXT,
            result_count INTEGER NOT NULL,
            executed_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_search_history_user
            ON search_history(user_id, executed_at);
    """,
    "search_terms": """
        CREATE TABLE IF NOT EXISTS search_terms (
            global_company_id TEXT NOT NULL
                REFERENCES companies(global_company_id) ON DELETE CASCADE,
            term TEXT NOT NULL,
            source TEXT NOT NULL CHECK (source IN ('name', 'alias')),
            PRIMARY KEY (global_company_id, term, source)
        );
        CREATE INDEX IF NOT EXISTS idx_search_terms_term ON search_terms(term);
    """,
}


def drop_tables(storage: SQLiteStorage) -> None:
    """Drop every catalog table, dependents first."""
    for name in reversed(list(CATALOG_DDL)):
        storage.execute(f"DROP TABLE IF EXISTS {CATALOG_TABLES[name]}")


__all__ = [
    "CATALOG_TABLES",
    "CATALOG_DDL",
    "SYNC_RESOURCES",
    "drop_tables",
]
