"""Company detail assembly.

The detail view is assembled from several small reads rather than one
join, since the overlay part depends on who is asking.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.query.search import company_row

EVIDENCE_LIMIT = 50
DRIFT_LIMIT = 10


@dataclass
class CompanyDetail:
    company: dict[str, Any]
    aliases: list[dict[str, Any]] = field(default_factory=list)
    evidence: list[dict[str, Any]] = field(default_factory=list)
    drift_alerts: list[dict[str, Any]] = field(default_factory=list)
    is_trustworthy: bool = False
    is_bookmarked: bool = False
    bookmark_tags: list[str] = field(default_factory=list)
    user_notes: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_company_detail(
    storage: SQLiteStorage,
    global_company_id: str,
    user_id: str | None = None,
) -> CompanyDetail | None:
    """Company row with aliases, recent evidence and drift, and the caller's overlay.

    Returns ``None`` for an unknown id.
    """
    row = storage.query_one(
        "SELECT * FROM companies WHERE global_company_id = ?", (global_company_id,)
    )
    if row is None:
        return None

    company = company_row(row)
    detail = CompanyDetail(company=company, is_trustworthy=company["is_trustworthy"])

    detail.aliases = storage.query(
        "SELECT * FROM company_aliases WHERE global_company_id = ? ORDER BY alias",
        (global_company_id,),
    )
    detail.evidence = storage.query(
        "SELECT * FROM evidence WHERE global_company_id = ? "
        "ORDER BY created_at DESC LIMIT ?",
        (global_company_id, EVIDENCE_LIMIT),
    )
    detail.drift_alerts = storage.query(
        "SELECT * FROM drift_alerts WHERE global_company_id = ? "
        "ORDER BY detected_at DESC LIMIT ?",
        (global_company_id, DRIFT_LIMIT),
    )

    if user_id:
        bookmark = storage.query_one(
            "SELECT tags FROM workspace_bookmarks WHERE user_id = ? AND global_company_id = ?",
            (user_id, global_company_id),
        )
        if bookmark is not None:
            detail.is_bookmarked = True
            detail.bookmark_tags = json.loads(bookmark["tags"] or "[]")
        detail.user_notes = storage.query(
            "SELECT * FROM workspace_notes WHERE user_id = ? AND global_company_id = ? "
            "ORDER BY updated_at DESC",
            (user_id, global_company_id),
        )

    return detail


__all__ = ["CompanyDetail", "get_company_detail", "EVIDENCE_LIMIT", "DRIFT_LIMIT"]
