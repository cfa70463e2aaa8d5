"""Tests for the sync engine against a fake catalog served by httpx.MockTransport."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest

from catalog_cache.core.errors import ClientError, StaleLockError, TransportError
from catalog_cache.sync.engine import SyncEngine
from catalog_cache.sync.state import ResourceType, SyncStatus
from tests._support.factories import (
    company_payload,
    drift_payload,
    evidence_payload,
    json_page,
)

_ITEMS_KEY = {
    "/v1/catalog/companies": "companies",
    "/v1/catalog/evidence": "evidence",
    "/v1/catalog/drift": "alerts",
    "/v1/catalog/runs": "runs",
    "/v1/catalog/stats": "stats",
}


class FakeCatalog:
    """Routes requests by path; unrouted list endpoints return an empty page."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable] = {}

    def route(self, path: str, handler: Callable) -> None:
        self.routes[path] = handler

    def pages(self, path: str, pages: dict[str | None, httpx.Response | Callable]) -> None:
        """Serve *pages* keyed by the incoming ``cursor`` parameter."""

        def handler(request: httpx.Request) -> httpx.Response:
            response = pages[request.url.params.get("cursor")]
            if callable(response):
                return response(request)
            # fresh copy per request; the same page may be served repeatedly
            return httpx.Response(response.status_code, headers=response.headers, content=response.content)

        self.route(path, handler)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is not None:
            return handler(request)
        return json_page(_ITEMS_KEY.get(request.url.path, "items"), [])

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


COMPANIES = "/v1/catalog/companies"


def _companies(prefix: str, n: int, **overrides) -> list[dict]:
    return [company_payload(f"{prefix}-{i:03d}", **overrides) for i in range(n)]


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture()
def engine(storage, settings, clock, catalog, make_client):
    return SyncEngine(storage, make_client(catalog), settings, clock=clock)


def _count(storage, table: str) -> int:
    return storage.scalar(f"SELECT COUNT(*) FROM {table}")


# =============================================================================
# Companies
# =============================================================================


class TestSyncCompanies:
    @pytest.mark.asyncio
    async def test_two_pages_then_stop(self, engine, catalog, storage):
        """100 + 40 rows → one pass of 140 records."""
        catalog.pages(
            COMPANIES,
            {
                None: json_page("companies", _companies("a", 100), next_cursor="p2", etag='"v1"'),
                "p2": json_page("companies", _companies("b", 40)),
            },
        )

        result = await engine.sync_companies()

        assert result.records_synced == 140
        assert result.pages == 2
        assert _count(storage, "companies") == 140
        state = engine.state.get(ResourceType.COMPANIES)
        assert state.sync_status is SyncStatus.SUCCESS
        assert state.records_synced == 140
        assert state.last_cursor is None
        assert state.last_etag == '"v1"'
        assert len(catalog.calls(COMPANIES)) == 2

    @pytest.mark.asyncio
    async def test_failure_keeps_committed_pages_and_cursor(self, engine, catalog, storage):
        """A 500 on page 2 leaves page-1 rows and an error state."""
        catalog.pages(
            COMPANIES,
            {
                None: json_page("companies", _companies("a", 100), next_cursor="p2", etag='"v1"'),
                "p2": httpx.Response(500),
            },
        )

        with pytest.raises(TransportError):
            await engine.sync_companies()

        assert _count(storage, "companies") == 100
        state = engine.state.get(ResourceType.COMPANIES)
        assert state.sync_status is SyncStatus.ERROR
        assert "500" in state.error_message
        assert state.last_cursor == "p2"
        assert state.last_etag is None
        assert state.last_sync_at is None

    @pytest.mark.asyncio
    async def test_resume_from_stored_cursor(self, engine, catalog, storage):
        catalog.pages(
            COMPANIES,
            {
                None: json_page("companies", _companies("a", 3), next_cursor="p2", etag='"v1"'),
                "p2": httpx.Response(503),
            },
        )
        with pytest.raises(TransportError):
            await engine.sync_companies()

        catalog.pages(COMPANIES, {"p2": json_page("companies", _companies("b", 2), etag='"v2"')})
        result = await engine.sync_companies()

        resumed = catalog.calls(COMPANIES)[-1]
        assert resumed.url.params["cursor"] == "p2"
        assert "if-none-match" not in resumed.headers
        assert result.records_synced == 2
        assert _count(storage, "companies") == 5
        state = engine.state.get(ResourceType.COMPANIES)
        assert state.sync_status is SyncStatus.SUCCESS
        # a resumed pass never saw the first page, so its ETag is not trusted
        assert state.last_etag is None

    @pytest.mark.asyncio
    async def test_repeated_pass_is_idempotent(self, engine, catalog, storage, clock):
        catalog.pages(COMPANIES, {None: json_page("companies", _companies("a", 5))})

        await engine.sync_companies()
        first = storage.query("SELECT global_company_id, name, final_score FROM companies ORDER BY 1")
        clock.advance(60)
        await engine.sync_companies()
        second = storage.query("SELECT global_company_id, name, final_score FROM companies ORDER BY 1")

        assert first == second
        # "Company a-000" → company, a, 000
        assert _count(storage, "search_terms") == 5 * 3

    @pytest.mark.asyncio
    async def test_incremental_pass_sends_updated_since(self, engine, catalog, clock):
        catalog.pages(COMPANIES, {None: json_page("companies", [])})

        await engine.sync_companies()
        assert "updated_since" not in catalog.calls(COMPANIES)[0].url.params

        clock.advance(10)
        await engine.sync_companies()
        assert catalog.calls(COMPANIES)[1].url.params["updated_since"] == "2026-03-01T12:00:00.000000+00:00"

    @pytest.mark.asyncio
    async def test_not_modified_is_a_no_op(self, engine, catalog, storage):
        catalog.pages(COMPANIES, {None: json_page("companies", _companies("a", 2), etag='"v1"')})
        await engine.sync_companies()

        catalog.pages(COMPANIES, {None: httpx.Response(304)})
        result = await engine.sync_companies()

        assert catalog.calls(COMPANIES)[-1].headers["if-none-match"] == '"v1"'
        assert result.not_modified is True
        assert result.records_synced == 0
        assert _count(storage, "companies") == 2
        state = engine.state.get(ResourceType.COMPANIES)
        assert state.sync_status is SyncStatus.SUCCESS
        assert state.last_etag == '"v1"'

    @pytest.mark.asyncio
    async def test_force_full_sync_ignores_etag_and_updated_since(self, engine, catalog):
        catalog.pages(COMPANIES, {None: json_page("companies", [], etag='"v1"')})
        await engine.sync_companies()
        await engine.sync_companies(force_full_sync=True)

        last = catalog.calls(COMPANIES)[-1]
        assert "if-none-match" not in last.headers
        assert "updated_since" not in last.url.params

    @pytest.mark.asyncio
    async def test_second_write_wins_with_new_synced_at(self, engine, catalog, storage, clock):
        catalog.pages(COMPANIES, {None: json_page("companies", [company_payload("x", name="Before")])})
        await engine.sync_companies()
        first_synced = storage.scalar("SELECT synced_at FROM companies")

        clock.advance(30)
        catalog.pages(COMPANIES, {None: json_page("companies", [company_payload("x", name="After")])})
        await engine.sync_companies()

        row = storage.query_one("SELECT name, synced_at FROM companies")
        assert row["name"] == "After"
        assert row["synced_at"] > first_synced

    @pytest.mark.asyncio
    async def test_invalid_records_skipped_and_counted(self, engine, catalog, storage):
        items = [company_payload("ok"), company_payload("bad", final_score=7), {"name": "no id"}]
        catalog.pages(COMPANIES, {None: json_page("companies", items)})

        result = await engine.sync_companies()

        assert result.records_synced == 1
        assert result.errors == 2
        assert _count(storage, "companies") == 1

    @pytest.mark.asyncio
    async def test_malformed_aliases_do_not_abort_page(self, engine, catalog, storage):
        items = [company_payload("good"), company_payload("bad", aliases=7)]
        catalog.pages(COMPANIES, {None: json_page("companies", items)})

        result = await engine.sync_companies()

        assert result.records_synced == 1
        assert result.errors == 1
        assert engine.state.get(ResourceType.COMPANIES).sync_status is SyncStatus.SUCCESS
        assert storage.scalar("SELECT global_company_id FROM companies") == "good"


# =============================================================================
# Locking / cancellation
# =============================================================================


class TestPassLifecycle:
    @pytest.mark.asyncio
    async def test_overlapping_pass_rejected(self, engine, catalog):
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow(request):
            entered.set()
            await release.wait()
            return json_page("companies", [])

        catalog.route(COMPANIES, slow)
        first = asyncio.create_task(engine.sync_companies())
        await entered.wait()

        with pytest.raises(StaleLockError):
            await engine.sync_companies()

        release.set()
        result = await first
        assert engine.state.get(ResourceType.COMPANIES).sync_status is SyncStatus.SUCCESS
        assert result.records_synced == 0

    @pytest.mark.asyncio
    async def test_second_engine_rejected_by_state_row(self, engine, storage, settings, clock, make_client):
        engine.state.begin(ResourceType.DRIFT)
        other = SyncEngine(storage, make_client(FakeCatalog()), settings, clock=clock)
        with pytest.raises(StaleLockError):
            await other.sync_drift()

    @pytest.mark.asyncio
    async def test_cancellation_marks_error(self, engine, catalog):
        entered = asyncio.Event()

        async def hang(request):
            entered.set()
            await asyncio.Event().wait()

        catalog.route(COMPANIES, hang)
        task = asyncio.create_task(engine.sync_companies())
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        state = engine.state.get(ResourceType.COMPANIES)
        assert state.sync_status is SyncStatus.ERROR
        assert state.error_message == "sync pass cancelled"

    @pytest.mark.asyncio
    async def test_failed_pass_can_run_again(self, engine, catalog):
        catalog.route(COMPANIES, lambda r: httpx.Response(400))
        with pytest.raises(ClientError):
            await engine.sync_companies()

        catalog.pages(COMPANIES, {None: json_page("companies", [])})
        await engine.sync_companies()
        assert engine.state.get(ResourceType.COMPANIES).sync_status is SyncStatus.SUCCESS


# =============================================================================
# Satellite resources
# =============================================================================


class TestSatellitePasses:
    @pytest.mark.asyncio
    async def test_evidence_failure_isolated_per_company(self, engine, catalog, storage):
        def evidence(request):
            company = request.url.params["company_id"]
            if company == "b":
                return httpx.Response(403)
            return json_page("evidence", [evidence_payload("ev-a", company, content="full text")])

        catalog.route("/v1/catalog/evidence", evidence)
        result = await engine.sync_evidence(["a", "b"])

        assert result.records_synced == 1
        assert result.errors == 1
        assert _count(storage, "evidence") == 1
        assert engine.state.get(ResourceType.EVIDENCE).sync_status is SyncStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_evidence_defaults_to_recently_synced(self, engine, catalog, clock):
        catalog.pages(COMPANIES, {None: json_page("companies", _companies("a", 2))})
        await engine.sync_companies()

        await engine.sync_evidence()
        asked = sorted(r.url.params["company_id"] for r in catalog.calls("/v1/catalog/evidence"))
        assert asked == ["a-000", "a-001"]

        clock.advance(engine.settings.evidence_window_seconds + 1)
        assert engine.recently_synced_company_ids() == []

    @pytest.mark.asyncio
    async def test_drift_since_last_success(self, engine, catalog, storage):
        catalog.route("/v1/catalog/drift", lambda r: json_page("alerts", [drift_payload()]))

        await engine.sync_drift()
        await engine.sync_drift()

        first, second = catalog.calls("/v1/catalog/drift")
        assert "since" not in first.url.params
        assert second.url.params["since"] == "2026-03-01T12:00:00.000000+00:00"
        assert _count(storage, "drift_alerts") == 1

    @pytest.mark.asyncio
    async def test_runs_and_stats(self, engine, catalog, storage):
        catalog.route(
            "/v1/catalog/runs",
            lambda r: json_page(
                "runs",
                [
                    {
                        "run_id": "run-1",
                        "started_at": "2026-02-01T00:00:00+00:00",
                        "companies_scored": 10,
                        "avg_confidence": 0.8,
                        "norm_context_version": "nc-1",
                        "status": "completed",
                    }
                ],
            ),
        )
        catalog.route(
            "/v1/catalog/stats",
            lambda r: json_page(
                "stats",
                [{"stat_name": "companies_total", "stat_value": 1200, "measured_at": "2026-03-01T00:00:00+00:00"}],
                etag='"s1"',
            ),
        )

        assert (await engine.sync_runs()).records_synced == 1
        assert (await engine.sync_stats()).records_synced == 1
        assert storage.scalar("SELECT stat_value FROM service_stats") == 1200
        assert engine.state.get(ResourceType.STATS).last_etag == '"s1"'

    @pytest.mark.asyncio
    async def test_scores_refresh_rebuilds_facets(self, engine, catalog, storage):
        catalog.pages(COMPANIES, {None: json_page("companies", [company_payload("a", final_score=0.1)])})
        await engine.sync_companies()
        engine.materialize_facets()

        bundle = {k: 0.9 for k in ("final_score", "d_score", "o_score", "i_score", "m_score", "b_score", "confidence_score")}
        bundle.update(norm_context_version="nc-2", checksum="c2")
        catalog.route("/v1/catalog/scores", lambda r: httpx.Response(200, json=bundle))

        result = await engine.sync_scores(["a"])

        assert result.records_synced == 1
        assert storage.scalar("SELECT final_score FROM companies") == 0.9
        top = storage.scalar(
            "SELECT count FROM facet_buckets WHERE facet_type = 'score_range' AND bucket_value = '80-100'"
        )
        assert top == 1

    @pytest.mark.asyncio
    async def test_scores_missing_checksum_rejected(self, engine, catalog, storage):
        catalog.pages(COMPANIES, {None: json_page("companies", [company_payload("a")])})
        await engine.sync_companies()
        catalog.route("/v1/catalog/scores", lambda r: httpx.Response(200, json={"final_score": 0.9}))

        result = await engine.sync_scores(["a"])

        assert result.errors == 1
        assert storage.scalar("SELECT final_score FROM companies") == 0.5


# =============================================================================
# Orchestration / status
# =============================================================================


class TestUniversalCatalog:
    @pytest.mark.asyncio
    async def test_full_run(self, engine, catalog, storage):
        catalog.pages(COMPANIES, {None: json_page("companies", _companies("a", 3))})

        summary = await engine.sync_universal_catalog(sync_evidence=True, sync_runs=True, sync_stats=True)

        assert summary.companies.records_synced == 3
        assert summary.facets["score_range"] == 5
        assert summary.evidence is not None and summary.runs is not None and summary.stats is not None
        statuses = {s.resource_type: s.sync_status for s in engine.state.list_all()}
        assert statuses[ResourceType.COMPANIES] is SyncStatus.SUCCESS
        assert statuses[ResourceType.DRIFT] is SyncStatus.SUCCESS
        assert statuses[ResourceType.SCORES] is SyncStatus.PENDING

    @pytest.mark.asyncio
    async def test_optional_passes_skipped(self, engine, catalog):
        summary = await engine.sync_universal_catalog()
        assert summary.evidence is None and summary.runs is None and summary.stats is None
        assert catalog.calls("/v1/catalog/evidence") == []

    @pytest.mark.asyncio
    async def test_companies_failure_stops_run(self, engine, catalog):
        catalog.route(COMPANIES, lambda r: httpx.Response(502))
        with pytest.raises(TransportError):
            await engine.sync_universal_catalog()
        assert catalog.calls("/v1/catalog/drift") == []

    @pytest.mark.asyncio
    async def test_needs_sync_and_status(self, engine, clock):
        assert engine.needs_sync() is True
        await engine.sync_companies()
        assert engine.needs_sync() is False

        status = engine.get_sync_status()
        assert status["is_stale"] is False
        assert status["resources"]["companies"]["sync_status"] == "success"
        assert set(status["resources"]) == {rt.value for rt in ResourceType}

        clock.advance(engine.settings.freshness_window_seconds + 1)
        assert engine.get_sync_status()["is_stale"] is True
