"""Typed wrappers for the remote catalog endpoints.

One method per resource. List methods return a :class:`Page`; the
``*_pages`` helpers return a :class:`PageCursor` over the same endpoint.
Single-record lookups return ``None`` on 404.
"""

from __future__ import annotations

from typing import Any

from catalog_cache.client.http import CatalogHttpClient, HttpResult
from catalog_cache.client.pagination import Page, PageCursor
from catalog_cache.core.errors import CatalogError, NotFoundError, TransportError
from catalog_cache.core.logging import get_logger
from catalog_cache.core.settings import CatalogSettings

logger = get_logger(__name__)

COMPANIES = "/v1/catalog/companies"
COMPANIES_SEARCH = "/v1/catalog/companies/search"
COMPANIES_BATCH = "/v1/catalog/companies/batch"
EVIDENCE = "/v1/catalog/evidence"
SCORES = "/v1/catalog/scores"
RUNS = "/v1/catalog/runs"
DRIFT = "/v1/catalog/drift"
STATS = "/v1/catalog/stats"
HEALTH = "/health"


def company_path(global_company_id: str) -> str:
    return f"{COMPANIES}/{global_company_id}"


def _to_page(result: HttpResult, items_key: str) -> Page:
    if result.not_modified:
        return Page(etag=result.etag, not_modified=True)

    data = result.data if isinstance(result.data, dict) else {}
    items = data.get(items_key)
    if items is None:
        items = data.get("items", [])
    if not isinstance(items, list):
        raise TransportError(
            f"response field {items_key!r} is not a list", retryable=False
        ).with_context(http_status=result.status_code)
    meta = {k: v for k, v in data.items() if k not in (items_key, "items", "next_cursor")}
    return Page(
        items=items,
        next_cursor=result.cursor,
        etag=result.etag,
        total=data.get("total"),
        dataset_version=data.get("dataset_version"),
        meta=meta,
    )


class CatalogClient:
    """Remote catalog API, one method per resource."""

    def __init__(self, http: CatalogHttpClient):
        self.http = http

    @classmethod
    def from_settings(cls, settings: CatalogSettings, **kwargs: Any) -> CatalogClient:
        return cls(CatalogHttpClient(settings, **kwargs))

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> CatalogClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # ── Companies ────────────────────────────────────────────────

    async def list_companies(
        self,
        *,
        cursor: str | None = None,
        etag: str | None = None,
        updated_since: str | None = None,
        region: list[str] | None = None,
        industry: list[str] | None = None,
        score_min: float | None = None,
        score_max: float | None = None,
        limit: int | None = None,
    ) -> Page:
        params = {
            "cursor": cursor,
            "updated_since": updated_since,
            "region": region,
            "industry": industry,
            "score_min": score_min,
            "score_max": score_max,
            "limit": limit,
        }
        result = await self.http.get(COMPANIES, params, etag=etag)
        return _to_page(result, "companies")

    def company_pages(
        self, *, cursor: str | None = None, etag: str | None = None, **filters: Any
    ) -> PageCursor:
        async def fetch(page_cursor: str | None, page_etag: str | None) -> Page:
            return await self.list_companies(cursor=page_cursor, etag=page_etag, **filters)

        return PageCursor(fetch, cursor=cursor, etag=etag)

    async def get_company(self, global_company_id: str, etag: str | None = None) -> dict | None:
        try:
            result = await self.http.get(company_path(global_company_id), etag=etag)
        except NotFoundError:
            return None
        if result.not_modified or not isinstance(result.data, dict):
            return None
        return result.data.get("company", result.data)

    async def search_companies(
        self,
        q: str,
        *,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int | None = None,
        etag: str | None = None,
    ) -> Page:
        params: dict[str, Any] = {"q": q, "limit": limit, "offset": offset}
        params.update(filters or {})
        result = await self.http.get(COMPANIES_SEARCH, params, etag=etag)
        return _to_page(result, "companies")

    async def batch_get_companies(self, ids: list[str]) -> list[dict]:
        if not ids:
            return []
        result = await self.http.post(COMPANIES_BATCH, {"ids": list(ids)})
        data = result.data if isinstance(result.data, dict) else {}
        companies = data.get("companies", [])
        if not isinstance(companies, list):
            raise TransportError("response field 'companies' is not a list", retryable=False)
        return companies

    # ── Evidence ─────────────────────────────────────────────────

    async def list_evidence(
        self,
        company_id: str,
        *,
        type: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
        etag: str | None = None,
    ) -> Page:
        params = {"company_id": company_id, "type": type, "cursor": cursor, "limit": limit}
        result = await self.http.get(EVIDENCE, params, etag=etag)
        return _to_page(result, "evidence")

    def evidence_pages(self, company_id: str, **kwargs: Any) -> PageCursor:
        async def fetch(page_cursor: str | None, page_etag: str | None) -> Page:
            return await self.list_evidence(company_id, cursor=page_cursor, etag=page_etag, **kwargs)

        return PageCursor(fetch)

    # ── Scoring ──────────────────────────────────────────────────

    async def get_scores(self, company_id: str, etag: str | None = None) -> dict | None:
        try:
            result = await self.http.get(SCORES, {"company_id": company_id}, etag=etag)
        except NotFoundError:
            return None
        if result.not_modified or not isinstance(result.data, dict):
            return None
        return result.data

    async def list_runs(
        self,
        *,
        cursor: str | None = None,
        limit: int | None = None,
        status: str | None = None,
        etag: str | None = None,
    ) -> Page:
        params = {"cursor": cursor, "limit": limit, "status": status}
        result = await self.http.get(RUNS, params, etag=etag)
        return _to_page(result, "runs")

    def run_pages(
        self, *, cursor: str | None = None, etag: str | None = None, **kwargs: Any
    ) -> PageCursor:
        async def fetch(page_cursor: str | None, page_etag: str | None) -> Page:
            return await self.list_runs(cursor=page_cursor, etag=page_etag, **kwargs)

        return PageCursor(fetch, cursor=cursor, etag=etag)

    # ── Drift ────────────────────────────────────────────────────

    async def get_drift_alerts(
        self,
        *,
        company_id: str | None = None,
        metric: str | None = None,
        since: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
        etag: str | None = None,
    ) -> Page:
        params = {
            "company_id": company_id,
            "metric": metric,
            "since": since,
            "cursor": cursor,
            "limit": limit,
        }
        result = await self.http.get(DRIFT, params, etag=etag)
        return _to_page(result, "alerts")

    def drift_pages(
        self, *, cursor: str | None = None, etag: str | None = None, **kwargs: Any
    ) -> PageCursor:
        async def fetch(page_cursor: str | None, page_etag: str | None) -> Page:
            return await self.get_drift_alerts(cursor=page_cursor, etag=page_etag, **kwargs)

        return PageCursor(fetch, cursor=cursor, etag=etag)

    # ── Stats / health ───────────────────────────────────────────

    async def get_stats(self, etag: str | None = None) -> Page:
        result = await self.http.get(STATS, etag=etag)
        return _to_page(result, "stats")

    async def health_check(self) -> dict[str, Any]:
        """Probe ``/health`` once, without retries."""
        try:
            result = await self.http.get(HEALTH, retry=False)
        except CatalogError as e:
            logger.warning("client.health_failed", error=str(e))
            return {"healthy": False, "error": str(e)}

        data = result.data if isinstance(result.data, dict) else {}
        return {
            "healthy": data.get("status") == "ok",
            "version": data.get("version"),
            "timestamp": data.get("timestamp"),
        }


__all__ = [
    "CatalogClient",
    "COMPANIES",
    "COMPANIES_SEARCH",
    "COMPANIES_BATCH",
    "EVIDENCE",
    "SCORES",
    "RUNS",
    "DRIFT",
    "STATS",
    "HEALTH",
    "company_path",
]
