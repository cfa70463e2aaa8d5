"""User overlay operations.

Bookmarks, comparisons, notes and search history belong to a user and are
never touched by sync. Every write is validated in strict mode and runs in
its own transaction. The only synced table written here is the local-only
``drift_alerts.seen_at`` column.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from catalog_cache.core.logging import get_logger
from catalog_cache.core.query_builder import QueryBuilder
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.timestamps import Clock, to_iso8601, utc_now
from catalog_cache.query.search import company_row
from catalog_cache.validation.models import (
    SearchHistoryEntry,
    WorkspaceBookmark,
    WorkspaceComparison,
    WorkspaceNote,
)
from catalog_cache.validation.parse import validate

logger = get_logger(__name__)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _loads(value: str | None, default: Any = None) -> Any:
    return json.loads(value) if value else default


class OverlayStore:
    """Overlay reads and writes against one storage handle."""

    def __init__(self, storage: SQLiteStorage, *, clock: Clock = utc_now) -> None:
        self.storage = storage
        self._clock = clock

    def _now(self) -> str:
        return to_iso8601(self._clock())

    # ── Bookmarks ────────────────────────────────────────────────

    def add_bookmark(
        self,
        user_id: str,
        global_company_id: str,
        tags: list[str] | None = None,
        org_id: str | None = None,
    ) -> WorkspaceBookmark:
        """Bookmark a company; re-bookmarking replaces the tags."""
        now = self._now()
        bookmark = validate(
            WorkspaceBookmark,
            {
                "user_id": user_id,
                "org_id": org_id,
                "global_company_id": global_company_id,
                "tags": tags or [],
                "created_at": now,
                "updated_at": now,
            },
        )
        with self.storage.transaction():
            self.storage.execute(
                """
                INSERT INTO workspace_bookmarks
                    (user_id, org_id, global_company_id, tags, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, global_company_id) DO UPDATE SET
                    tags = excluded.tags,
                    updated_at = excluded.updated_at
                """,
                (
                    bookmark.user_id,
                    bookmark.org_id,
                    bookmark.global_company_id,
                    _dumps(bookmark.tags),
                    bookmark.created_at,
                    bookmark.updated_at,
                ),
            )
        logger.debug("overlay.bookmark_saved", user_id=user_id, company_id=global_company_id)
        return bookmark

    def remove_bookmark(self, user_id: str, global_company_id: str) -> bool:
        with self.storage.transaction():
            cursor = self.storage.execute(
                "DELETE FROM workspace_bookmarks WHERE user_id = ? AND global_company_id = ?",
                (user_id, global_company_id),
            )
        return cursor.rowcount > 0

    def get_bookmarks(self, user_id: str) -> list[dict[str, Any]]:
        rows = self.storage.query(
            "SELECT * FROM workspace_bookmarks WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        for row in rows:
            row["tags"] = _loads(row["tags"], [])
        return rows

    def get_bookmarked_companies(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Bookmarked companies that are present in the cache, newest bookmark first."""
        rows = self.storage.query(
            """
            SELECT c.*, b.tags AS bookmark_tags
            FROM workspace_bookmarks b
            JOIN companies c ON c.global_company_id = b.global_company_id
            WHERE b.user_id = ?
            ORDER BY b.created_at DESC, b.id DESC
            LIMIT ? OFFSET ?
            """,
            (user_id, limit, offset),
        )
        companies = []
        for row in rows:
            tags = _loads(row.pop("bookmark_tags"), [])
            company = company_row(row)
            company["bookmark_tags"] = tags
            companies.append(company)
        return companies

    # ── Comparisons ──────────────────────────────────────────────

    def create_comparison(
        self,
        user_id: str,
        name: str,
        company_ids: list[str],
        org_id: str | None = None,
    ) -> WorkspaceComparison:
        """Create a named comparison of two or more companies."""
        now = self._now()
        comparison = validate(
            WorkspaceComparison,
            {
                "comparison_id": str(uuid.uuid4()),
                "user_id": user_id,
                "org_id": org_id,
                "name": name,
                "company_ids": company_ids,
                "created_at": now,
                "updated_at": now,
            },
        )
        with self.storage.transaction():
            self.storage.execute(
                """
                INSERT INTO workspace_comparisons
                    (comparison_id, user_id, org_id, name, company_ids, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    comparison.comparison_id,
                    comparison.user_id,
                    comparison.org_id,
                    comparison.name,
                    _dumps(comparison.company_ids),
                    comparison.created_at,
                    comparison.updated_at,
                ),
            )
        return comparison

    def list_comparisons(self, user_id: str) -> list[dict[str, Any]]:
        rows = self.storage.query(
            "SELECT * FROM workspace_comparisons WHERE user_id = ? ORDER BY updated_at DESC",
            (user_id,),
        )
        for row in rows:
            row["company_ids"] = _loads(row["company_ids"], [])
        return rows

    def delete_comparison(self, user_id: str, comparison_id: str) -> bool:
        with self.storage.transaction():
            cursor = self.storage.execute(
                "DELETE FROM workspace_comparisons WHERE user_id = ? AND comparison_id = ?",
                (user_id, comparison_id),
            )
        return cursor.rowcount > 0

    # ── Notes ────────────────────────────────────────────────────

    def add_note(
        self,
        user_id: str,
        global_company_id: str,
        content: str,
        org_id: str | None = None,
    ) -> WorkspaceNote:
        now = self._now()
        note = validate(
            WorkspaceNote,
            {
                "note_id": str(uuid.uuid4()),
                "user_id": user_id,
                "org_id": org_id,
                "global_company_id": global_company_id,
                "content": content,
                "created_at": now,
                "updated_at": now,
            },
        )
        with self.storage.transaction():
            self.storage.execute(
                """
                INSERT INTO workspace_notes
                    (note_id, user_id, org_id, global_company_id, content, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    note.note_id,
                    note.user_id,
                    note.org_id,
                    note.global_company_id,
                    note.content,
                    note.created_at,
                    note.updated_at,
                ),
            )
        return note

    def list_notes(self, user_id: str, global_company_id: str | None = None) -> list[dict[str, Any]]:
        if global_company_id is None:
            return self.storage.query(
                "SELECT * FROM workspace_notes WHERE user_id = ? ORDER BY updated_at DESC",
                (user_id,),
            )
        return self.storage.query(
            "SELECT * FROM workspace_notes WHERE user_id = ? AND global_company_id = ? "
            "ORDER BY updated_at DESC",
            (user_id, global_company_id),
        )

    # ── Search history ───────────────────────────────────────────

    def save_search_history(
        self,
        user_id: str,
        query: str,
        filters: dict[str, Any] | None,
        result_count: int,
        org_id: str | None = None,
    ) -> SearchHistoryEntry:
        entry = validate(
            SearchHistoryEntry,
            {
                "search_id": str(uuid.uuid4()),
                "user_id": user_id,
                "org_id": org_id,
                "query": query,
                "filters": filters or {},
                "result_count": result_count,
                "executed_at": self._now(),
            },
        )
        with self.storage.transaction():
            self.storage.execute(
                """
                INSERT INTO search_history
                    (search_id, user_id, org_id, query, filters, result_count, executed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.search_id,
                    entry.user_id,
                    entry.org_id,
                    entry.query,
                    _dumps(entry.filters),
                    entry.result_count,
                    entry.executed_at,
                ),
            )
        return entry

    def get_search_history(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        rows = self.storage.query(
            "SELECT * FROM search_history WHERE user_id = ? ORDER BY executed_at DESC LIMIT ?",
            (user_id, limit),
        )
        for row in rows:
            row["filters"] = _loads(row["filters"])
        return rows

    # ── Drift alerts ─────────────────────────────────────────────

    def list_drift_alerts(
        self,
        unseen_only: bool = False,
        company_id: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        qb = QueryBuilder("drift_alerts")
        if unseen_only:
            qb.where("seen_at IS NULL")
        if company_id:
            qb.where("global_company_id = ?", company_id)
        sql, params = qb.build(order_by="detected_at DESC, alert_id", limit=limit)
        return self.storage.query(sql, params)

    def mark_drift_seen(self, alert_id: str) -> bool:
        with self.storage.transaction():
            cursor = self.storage.execute(
                "UPDATE drift_alerts SET seen_at = ? WHERE alert_id = ?",
                (self._now(), alert_id),
            )
        return cursor.rowcount > 0


__all__ = ["OverlayStore"]
