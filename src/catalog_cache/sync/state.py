"""
Per-resource sync state.

One ``sync_state`` row per resource type records where the last pass got
to and how it ended. The row doubles as the single-writer lock: a pass may
only start by moving the row into ``syncing`` with a compare-and-set, so a
second pass for the same resource is rejected instead of interleaving
writes.

Architecture:
    ::

        pending ──begin()──► syncing ──complete()──► success
                               │                        │
                               └──fail()──► error       │
                                             │          │
                                   begin() ◄─┴──────────┘

        begin()     CAS to syncing; StaleLockError if another pass holds it
                    (a syncing row older than the lock TTL is taken over)
        save_cursor() cursor advanced per committed page
        complete()  last_sync_at = now, cursor cleared, ETag stored
        fail()      error_message set, cursor kept for resume

Examples:
    >>> store = SyncStateStore(storage)
    >>> store.begin(ResourceType.COMPANIES)
    >>> store.save_cursor(ResourceType.COMPANIES, "abc")
    >>> store.complete(ResourceType.COMPANIES, records_synced=140, etag='"v7"')
    >>> store.get(ResourceType.COMPANIES).sync_status
    <SyncStatus.SUCCESS: 'success'>

Tags:
    sync, state-machine, cursor, etag, lock, catalog-cache
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from catalog_cache.core.errors import StaleLockError
from catalog_cache.core.logging import get_logger
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.timestamps import Clock, from_iso8601, to_iso8601, utc_now

logger = get_logger(__name__)


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class ResourceType(str, Enum):
    COMPANIES = "companies"
    EVIDENCE = "evidence"
    SCORES = "scores"
    RUNS = "runs"
    DRIFT = "drift"
    STATS = "stats"


@dataclass(frozen=True, slots=True)
class SyncState:
    """Snapshot of one ``sync_state`` row."""

    resource_type: ResourceType
    sync_status: SyncStatus = SyncStatus.PENDING
    last_sync_at: datetime | None = None
    last_etag: str | None = None
    last_cursor: str | None = None
    error_message: str | None = None
    records_synced: int = 0
    started_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_syncing(self) -> bool:
        return self.sync_status is SyncStatus.SYNCING

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_type": self.resource_type.value,
            "sync_status": self.sync_status.value,
            "last_sync_at": to_iso8601(self.last_sync_at),
            "last_etag": self.last_etag,
            "last_cursor": self.last_cursor,
            "error_message": self.error_message,
            "records_synced": self.records_synced,
            "started_at": to_iso8601(self.started_at),
            "updated_at": to_iso8601(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SyncState:
        return cls(
            resource_type=ResourceType(row["resource_type"]),
            sync_status=SyncStatus(row["sync_status"]),
            last_sync_at=from_iso8601(row["last_sync_at"]),
            last_etag=row["last_etag"],
            last_cursor=row["last_cursor"],
            error_message=row["error_message"],
            records_synced=row["records_synced"] or 0,
            started_at=from_iso8601(row["started_at"]),
            updated_at=from_iso8601(row["updated_at"]),
        )


class SyncStateStore:
    """Reads and transitions ``sync_state`` rows.

    Args:
        storage: Open storage handle
        clock: Source of "now" (injectable for tests)
        lock_ttl_seconds: Age after which a ``syncing`` row counts as a
            crashed pass and may be taken over
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        *,
        clock: Clock = utc_now,
        lock_ttl_seconds: int = 3600,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._lock_ttl = timedelta(seconds=lock_ttl_seconds)

    def _now(self) -> str:
        return to_iso8601(self._clock())

    def _ensure_row(self, resource: ResourceType) -> None:
        self._storage.execute(
            "INSERT OR IGNORE INTO sync_state (resource_type, sync_status, updated_at) "
            "VALUES (?, 'pending', ?)",
            (resource.value, self._now()),
        )

    # -- reads ---------------------------------------------------------------

    def get(self, resource: ResourceType | str) -> SyncState:
        resource = ResourceType(resource)
        row = self._storage.query_one(
            "SELECT * FROM sync_state WHERE resource_type = ?", (resource.value,)
        )
        if row is None:
            return SyncState(resource_type=resource)
        return SyncState.from_row(row)

    def list_all(self) -> list[SyncState]:
        rows = self._storage.query("SELECT * FROM sync_state ORDER BY resource_type")
        known = {r["resource_type"]: SyncState.from_row(r) for r in rows if r["resource_type"] in _RESOURCE_VALUES}
        return [known.get(rt.value, SyncState(resource_type=rt)) for rt in ResourceType]

    def needs_sync(self, resource: ResourceType | str, freshness_window_seconds: int) -> bool:
        """True if never synced, last pass failed, or the data is older than the window."""
        state = self.get(resource)
        if state.sync_status is SyncStatus.ERROR:
            return True
        if state.last_sync_at is None:
            return True
        age = self._clock() - state.last_sync_at
        return age > timedelta(seconds=freshness_window_seconds)

    def status_report(self, freshness_window_seconds: int) -> dict[str, Any]:
        """Every resource's state keyed by name, plus whether companies are stale."""
        return {
            "resources": {s.resource_type.value: s.to_dict() for s in self.list_all()},
            "is_stale": self.needs_sync(ResourceType.COMPANIES, freshness_window_seconds),
        }

    # -- transitions ---------------------------------------------------------

    def begin(self, resource: ResourceType | str) -> SyncState:
        """Move *resource* to ``syncing``.

        Raises:
            StaleLockError: another pass holds the resource
        """
        resource = ResourceType(resource)
        now = self._clock()
        stale_before = to_iso8601(now - self._lock_ttl)

        with self._storage.transaction():
            self._ensure_row(resource)
            previous = self.get(resource)
            cursor = self._storage.execute(
                """
                UPDATE sync_state
                SET sync_status = 'syncing', error_message = NULL,
                    started_at = ?, updated_at = ?
                WHERE resource_type = ?
                  AND (sync_status != 'syncing' OR started_at IS NULL OR started_at < ?)
                """,
                (to_iso8601(now), to_iso8601(now), resource.value, stale_before),
            )
            if cursor.rowcount == 0:
                raise StaleLockError(resource.value)

        if previous.is_syncing:
            logger.warning(
                "sync.lock_taken_over",
                resource=resource.value,
                started_at=to_iso8601(previous.started_at),
            )
        return self.get(resource)

    def save_cursor(self, resource: ResourceType | str, cursor: str | None) -> None:
        """Record the position after a committed page."""
        self._storage.execute(
            "UPDATE sync_state SET last_cursor = ?, updated_at = ? WHERE resource_type = ?",
            (cursor, self._now(), ResourceType(resource).value),
        )

    def complete(
        self,
        resource: ResourceType | str,
        records_synced: int,
        etag: str | None = None,
    ) -> SyncState:
        """Mark a pass successful; the cursor is cleared and a new ETag kept."""
        resource = ResourceType(resource)
        now = self._now()
        with self._storage.transaction():
            self._storage.execute(
                """
                UPDATE sync_state
                SET sync_status = 'success', last_sync_at = ?, last_cursor = NULL,
                    last_etag = COALESCE(?, last_etag), error_message = NULL,
                    records_synced = ?, updated_at = ?
                WHERE resource_type = ?
                """,
                (now, etag, records_synced, now, resource.value),
            )
        return self.get(resource)

    def fail(
        self,
        resource: ResourceType | str,
        message: str,
        records_synced: int | None = None,
    ) -> SyncState:
        """Mark a pass failed; the cursor is kept so the next pass resumes."""
        resource = ResourceType(resource)
        with self._storage.transaction():
            self._storage.execute(
                """
                UPDATE sync_state
                SET sync_status = 'error', error_message = ?,
                    records_synced = COALESCE(?, records_synced), updated_at = ?
                WHERE resource_type = ?
                """,
                (message or "unknown error", records_synced, self._now(), resource.value),
            )
        return self.get(resource)

    def reset(self, resource: ResourceType | str) -> None:
        """Forget cursor and ETag so the next pass is a full sync."""
        self._storage.execute(
            "UPDATE sync_state SET last_cursor = NULL, last_etag = NULL, updated_at = ? "
            "WHERE resource_type = ?",
            (self._now(), ResourceType(resource).value),
        )


_RESOURCE_VALUES = {rt.value for rt in ResourceType}


__all__ = ["SyncStatus", "ResourceType", "SyncState", "SyncStateStore"]
