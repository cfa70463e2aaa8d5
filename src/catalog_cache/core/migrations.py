"""Versioned schema migrations.

Migrations are declared in code as numbered steps, tracked in the
``schema_migrations`` table, and applied in version order. Each step runs
in its own transaction together with its tracking record.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from catalog_cache.core.errors import CatalogError, ConfigError
from catalog_cache.core.logging import get_logger
from catalog_cache.core.schema import CATALOG_DDL, SYNC_RESOURCES, drop_tables
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.timestamps import to_iso8601, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    """A single numbered schema step."""

    version: int
    name: str
    apply: Callable[[SQLiteStorage], None]


@dataclass
class MigrationRecord:
    """Record of a single applied migration."""

    version: int
    name: str
    applied_at: str


@dataclass
class MigrationResult:
    """Result of a migration run."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


def _initial_schema(storage: SQLiteStorage) -> None:
    for name, ddl in CATALOG_DDL.items():
        if name == "search_terms":
            continue
        for statement in _split(ddl):
            storage.execute(statement)

    now = to_iso8601(utc_now())
    for resource in SYNC_RESOURCES:
        storage.execute(
            "INSERT OR IGNORE INTO sync_state (resource_type, sync_status, updated_at) "
            "VALUES (?, 'pending', ?)",
            (resource, now),
        )


def _search_terms_index(storage: SQLiteStorage) -> None:
    for statement in _split(CATALOG_DDL["search_terms"]):
        storage.execute(statement)


def _split(script: str) -> list[str]:
    # DDL here never contains literal semicolons
    return [s.strip() for s in script.split(";") if s.strip()]


MIGRATIONS: list[Migration] = [
    Migration(1, "initial_schema", _initial_schema),
    Migration(2, "search_terms_index", _search_terms_index),
]


class MigrationRunner:
    """Applies code-declared migrations to a storage handle.

    Example::

        from catalog_cache.core.storage import SQLiteStorage
        from catalog_cache.core.migrations import MigrationRunner

        with SQLiteStorage("catalog.db") as storage:
            result = MigrationRunner(storage).apply_pending()
            print(f"Applied {len(result.applied)} migrations")
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        migrations: list[Migration] | None = None,
        *,
        environment: str = "development",
    ) -> None:
        self._storage = storage
        self._migrations = sorted(migrations or MIGRATIONS, key=lambda m: m.version)
        self._environment = environment
        self._ensure_migrations_table()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply_pending(self) -> MigrationResult:
        """Apply all pending migrations in version order.

        Stops at the first failure; earlier steps stay applied.
        """
        result = MigrationResult()
        applied = {r.version for r in self.get_applied()}

        for migration in self._migrations:
            label = f"{migration.version:03d}_{migration.name}"
            if migration.version in applied:
                result.skipped.append(label)
                continue

            try:
                with self._storage.transaction():
                    migration.apply(self._storage)
                    self._storage.execute(
                        "INSERT INTO schema_migrations (version, name, applied_at) "
                        "VALUES (?, ?, ?)",
                        (migration.version, migration.name, to_iso8601(utc_now())),
                    )
            except CatalogError as exc:
                result.errors[label] = str(exc)
                logger.error("migration.failed", migration=label, error=str(exc))
                break

            result.applied.append(label)
            logger.info("migration.applied", migration=label)

        return result

    def get_applied(self) -> list[MigrationRecord]:
        """Return already-applied migrations."""
        rows = self._storage.query(
            "SELECT version, name, applied_at FROM schema_migrations ORDER BY version"
        )
        return [MigrationRecord(**row) for row in rows]

    def get_pending(self) -> list[Migration]:
        applied = {r.version for r in self.get_applied()}
        return [m for m in self._migrations if m.version not in applied]

    def current_version(self) -> int:
        return self._storage.scalar("SELECT MAX(version) FROM schema_migrations") or 0

    def needs_migration(self) -> bool:
        return bool(self.get_pending())

    def status(self) -> dict:
        """Summarize applied and pending migrations."""
        return {
            "current_version": self.current_version(),
            "latest_version": self._migrations[-1].version if self._migrations else 0,
            "applied": [
                {"version": r.version, "name": r.name, "applied_at": r.applied_at}
                for r in self.get_applied()
            ],
            "pending": [{"version": m.version, "name": m.name} for m in self.get_pending()],
        }

    def reset(self) -> MigrationResult:
        """Drop every table and re-apply all migrations.

        Refused when running in production.
        """
        if self._environment == "production":
            raise ConfigError("Refusing to reset the database in production")

        logger.warning("migration.reset", path=self._storage.path)
        with self._storage.transaction():
            drop_tables(self._storage)
            self._storage.execute("DELETE FROM schema_migrations")
        return self.apply_pending()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_migrations_table(self) -> None:
        self._storage.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
            """
        )


def migrate(storage: SQLiteStorage, *, environment: str = "development") -> MigrationResult:
    """Apply pending migrations to *storage*."""
    return MigrationRunner(storage, environment=environment).apply_pending()


__all__ = [
    "MIGRATIONS",
    "Migration",
    "MigrationRecord",
    "MigrationResult",
    "MigrationRunner",
    "migrate",
]
