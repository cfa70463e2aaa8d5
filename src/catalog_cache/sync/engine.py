"""
Sync engine: reconciles the local cache with the remote catalog.

Each resource type is synchronized by an independent *pass*:
fetch a page, validate its records, upsert them in one storage transaction
together with the advanced cursor, repeat until the cursor runs out.

Manifesto:
    - **Resumable:** the cursor is committed with every page, so a failed
      pass resumes where it stopped
    - **Partial progress is kept:** committed pages stay committed when a
      later page fails
    - **One writer per resource:** overlapping passes are rejected with
      ``StaleLockError``, never queued
    - **Bad records never abort a batch:** they are skipped and counted

Architecture:
    ::

        sync_universal_catalog()
          │
          ├── sync_companies()       cursor + ETag + updated_since
          ├── materialize_facets()   wholesale rebuild
          ├── sync_evidence()        recently synced companies only (optional)
          ├── sync_drift()           since last successful drift pass
          ├── sync_runs()            (optional)
          └── sync_stats()           (optional)

        every pass:
          _pass(resource) ── asyncio.Lock (in-process) + SyncStateStore.begin (CAS)
             │ success → complete(records, etag)
             └ failure / cancellation → fail(message), re-raise

Examples:
    >>> async with CatalogClient.from_settings(settings) as client:
    ...     engine = SyncEngine(storage, client, settings)
    ...     if engine.needs_sync():
    ...         summary = await engine.sync_universal_catalog(sync_evidence=True)

Tags:
    sync, incremental, cursor, etag, upsert, facets, catalog-cache
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from functools import partial
from typing import Any

from pydantic import BaseModel

from catalog_cache.client.endpoints import CatalogClient
from catalog_cache.client.pagination import PageCursor
from catalog_cache.core.errors import CatalogError, StaleLockError
from catalog_cache.core.logging import LogContext, get_logger
from catalog_cache.core.settings import CatalogSettings
from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.timestamps import Clock, to_iso8601, utc_now
from catalog_cache.sync import facets
from catalog_cache.sync.state import ResourceType, SyncState, SyncStateStore
from catalog_cache.sync.upserts import (
    update_company_scores,
    upsert_company,
    upsert_drift_alert,
    upsert_evidence,
    upsert_scoring_run,
    upsert_service_stat,
)
from catalog_cache.validation.models import (
    Company,
    DriftAlert,
    Evidence,
    ScoreBundle,
    ScoringRun,
    ServiceStat,
)
from catalog_cache.validation.parse import (
    parse_batch,
    safe_parse,
    transform_api_company,
    transform_api_evidence,
    validate_determinism_fields,
)

logger = get_logger(__name__)


@dataclass
class PassResult:
    """Outcome of one sync pass."""

    resource: str
    records_synced: int = 0
    errors: int = 0
    pages: int = 0
    not_modified: bool = False
    etag: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncSummary:
    """Outcome of :meth:`SyncEngine.sync_universal_catalog`."""

    companies: PassResult
    facets: dict[str, int] = field(default_factory=dict)
    evidence: PassResult | None = None
    drift: PassResult | None = None
    runs: PassResult | None = None
    stats: PassResult | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncEngine:
    """Runs sync passes against one storage handle and one catalog client.

    Args:
        storage: Open, migrated storage handle
        client: Remote catalog client
        settings: Page size, windows and lock TTL
        clock: Source of "now" (injectable for tests)
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        client: CatalogClient,
        settings: CatalogSettings | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.storage = storage
        self.client = client
        self.settings = settings or CatalogSettings()
        self._clock = clock
        self.state = SyncStateStore(
            storage,
            clock=clock,
            lock_ttl_seconds=self.settings.sync_lock_ttl_seconds,
        )
        self._locks: dict[ResourceType, asyncio.Lock] = {rt: asyncio.Lock() for rt in ResourceType}

    def _now(self) -> str:
        return to_iso8601(self._clock())

    # ------------------------------------------------------------------
    # Pass lifecycle
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _pass(self, resource: ResourceType) -> AsyncIterator[tuple[SyncState, PassResult]]:
        lock = self._locks[resource]
        if lock.locked():
            raise StaleLockError(resource.value)

        async with lock:
            state = self.state.begin(resource)
            result = PassResult(resource=resource.value)
            started = self._clock()

            async with LogContext(resource=resource.value, pass_id=uuid.uuid4().hex[:12]):
                logger.info("sync.pass_started", cursor=state.last_cursor)
                try:
                    yield state, result
                except asyncio.CancelledError:
                    self.state.fail(resource, "sync pass cancelled", result.records_synced)
                    logger.warning("sync.pass_cancelled", records=result.records_synced)
                    raise
                except Exception as e:
                    self.state.fail(resource, str(e) or e.__class__.__name__, result.records_synced)
                    logger.error(
                        "sync.pass_failed",
                        records=result.records_synced,
                        error=str(e),
                        error_type=e.__class__.__name__,
                    )
                    raise

                result.duration_seconds = (self._clock() - started).total_seconds()
                self.state.complete(resource, result.records_synced, result.etag)
                logger.info(
                    "sync.pass_completed",
                    records=result.records_synced,
                    errors=result.errors,
                    pages=result.pages,
                    not_modified=result.not_modified,
                )

    async def _drain(
        self,
        resource: ResourceType,
        pages: PageCursor,
        result: PassResult,
        model: type[BaseModel],
        write: Callable[[SQLiteStorage, Any, str], None],
        transform: Callable[[Mapping[str, Any]], Any] | None = None,
        *,
        track_cursor: bool = True,
    ) -> None:
        """Pull every page from *pages*, committing each with its cursor."""
        while (page := await pages.next()) is not None:
            if page.not_modified:
                result.not_modified = True
                logger.info("sync.not_modified")
                break

            valid, rejected = parse_batch(model, page.items, transform)
            synced_at = self._now()
            with self.storage.transaction():
                for record in valid:
                    write(self.storage, record, synced_at)
                if track_cursor:
                    self.state.save_cursor(resource, page.next_cursor)

            result.records_synced += len(valid)
            result.errors += rejected
            result.pages += 1
            logger.info(
                "sync.page_committed",
                records=len(valid),
                rejected=rejected,
                next_cursor=page.next_cursor,
            )

        if pages.etag and pages.from_start:
            result.etag = pages.etag

    # ------------------------------------------------------------------
    # Resource passes
    # ------------------------------------------------------------------

    async def sync_companies(self, force_full_sync: bool = False) -> PassResult:
        """Incrementally sync companies.

        Resumes from a stored cursor if the previous pass failed. A forced
        full sync ignores the cursor, ETag and ``updated_since``.
        """
        async with self._pass(ResourceType.COMPANIES) as (state, result):
            if force_full_sync:
                cursor, etag, updated_since = None, None, None
            else:
                cursor = state.last_cursor
                etag = state.last_etag if cursor is None else None
                updated_since = to_iso8601(state.last_sync_at)

            pages = self.client.company_pages(
                cursor=cursor,
                etag=etag,
                updated_since=updated_since,
                limit=self.settings.page_size,
            )
            await self._drain(
                ResourceType.COMPANIES,
                pages,
                result,
                Company,
                upsert_company,
                partial(transform_api_company, now=self._clock()),
            )
        return result

    def materialize_facets(self) -> dict[str, int]:
        return facets.materialize_facets(self.storage, self._clock)

    def recently_synced_company_ids(self) -> list[str]:
        cutoff = to_iso8601(
            self._clock() - timedelta(seconds=self.settings.evidence_window_seconds)
        )
        rows = self.storage.query(
            "SELECT global_company_id FROM companies "
            "WHERE is_active = 1 AND synced_at > ? "
            "ORDER BY synced_at DESC LIMIT ?",
            (cutoff, self.settings.evidence_company_limit),
        )
        return [r["global_company_id"] for r in rows]

    async def sync_evidence(self, company_ids: list[str] | None = None) -> PassResult:
        """Sync evidence for *company_ids*, or for recently synced companies.

        A failure for one company is logged and counted; the pass continues.
        """
        async with self._pass(ResourceType.EVIDENCE) as (_, result):
            ids = company_ids if company_ids is not None else self.recently_synced_company_ids()
            logger.info("sync.evidence_scope", companies=len(ids))

            for company_id in ids:
                pages = self.client.evidence_pages(company_id, limit=self.settings.page_size)
                try:
                    await self._drain(
                        ResourceType.EVIDENCE,
                        pages,
                        result,
                        Evidence,
                        upsert_evidence,
                        transform_api_evidence,
                        track_cursor=False,
                    )
                except CatalogError as e:
                    result.errors += 1
                    logger.warning(
                        "sync.evidence_company_failed",
                        company_id=company_id,
                        error=str(e),
                    )
            result.etag = None
        return result

    async def sync_drift(self) -> PassResult:
        """Sync drift alerts detected since the last successful drift pass."""
        async with self._pass(ResourceType.DRIFT) as (state, result):
            cursor = state.last_cursor
            pages = self.client.drift_pages(
                cursor=cursor,
                etag=state.last_etag if cursor is None else None,
                since=to_iso8601(state.last_sync_at),
                limit=self.settings.page_size,
            )
            await self._drain(ResourceType.DRIFT, pages, result, DriftAlert, upsert_drift_alert)
        return result

    async def sync_runs(self) -> PassResult:
        async with self._pass(ResourceType.RUNS) as (state, result):
            cursor = state.last_cursor
            pages = self.client.run_pages(
                cursor=cursor,
                etag=state.last_etag if cursor is None else None,
                limit=self.settings.page_size,
            )
            await self._drain(ResourceType.RUNS, pages, result, ScoringRun, upsert_scoring_run)
        return result

    async def sync_stats(self) -> PassResult:
        async with self._pass(ResourceType.STATS) as (state, result):
            page = await self.client.get_stats(etag=state.last_etag)
            result.pages = 1
            if page.not_modified:
                result.not_modified = True
                logger.info("sync.not_modified")
            else:
                valid, rejected = parse_batch(ServiceStat, page.items)
                synced_at = self._now()
                with self.storage.transaction():
                    for stat in valid:
                        upsert_service_stat(self.storage, stat, synced_at)
                result.records_synced = len(valid)
                result.errors = rejected
            result.etag = page.etag
        return result

    async def sync_scores(self, company_ids: list[str]) -> PassResult:
        """Refresh score columns for cached companies.

        Bundles that fail validation or the determinism check are skipped.
        Facets are rebuilt when any score changed.
        """
        async with self._pass(ResourceType.SCORES) as (_, result):
            for company_id in company_ids:
                payload = await self.client.get_scores(company_id)
                if payload is None:
                    continue
                bundle = safe_parse(ScoreBundle, payload)
                if bundle is None or not validate_determinism_fields(bundle):
                    result.errors += 1
                    logger.warning("sync.scores_rejected", company_id=company_id)
                    continue
                with self.storage.transaction():
                    if update_company_scores(self.storage, company_id, bundle, self._now()):
                        result.records_synced += 1

        if result.records_synced:
            self.materialize_facets()
        return result

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def sync_universal_catalog(
        self,
        force_full_sync: bool = False,
        sync_evidence: bool = False,
        sync_runs: bool = False,
        sync_stats: bool = False,
    ) -> SyncSummary:
        """Run every pass sequentially.

        The first failing pass propagates; passes that already finished keep
        their committed data and state.
        """
        started = self._clock()

        companies = await self.sync_companies(force_full_sync)
        summary = SyncSummary(companies=companies)
        summary.facets = self.materialize_facets()

        if sync_evidence:
            summary.evidence = await self.sync_evidence()
        summary.drift = await self.sync_drift()
        if sync_runs:
            summary.runs = await self.sync_runs()
        if sync_stats:
            summary.stats = await self.sync_stats()

        summary.duration_seconds = (self._clock() - started).total_seconds()
        logger.info(
            "sync.catalog_completed",
            companies=companies.records_synced,
            duration=summary.duration_seconds,
        )
        return summary

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def needs_sync(self, resource: ResourceType | str = ResourceType.COMPANIES) -> bool:
        return self.state.needs_sync(resource, self.settings.freshness_window_seconds)

    def get_sync_status(self) -> dict[str, Any]:
        """Every resource's state plus whether companies are stale."""
        return self.state.status_report(self.settings.freshness_window_seconds)


__all__ = ["SyncEngine", "SyncSummary", "PassResult"]
