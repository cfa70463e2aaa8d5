"""Tests for upserts and facet materialization."""

from __future__ import annotations

from catalog_cache.sync.facets import load_facets, materialize_facets
from catalog_cache.sync.upserts import (
    update_company_scores,
    upsert_company,
    upsert_drift_alert,
)
from catalog_cache.validation.models import Company, DriftAlert, ScoreBundle
from catalog_cache.validation.parse import transform_api_company, validate
from tests._support.factories import company_payload, drift_payload


def _company(gid="gc-1", **kw) -> Company:
    return validate(Company, transform_api_company(company_payload(gid, **kw)))


def _alias(alias_id, alias, alias_type="dba"):
    return {"alias_id": alias_id, "alias": alias, "alias_type": alias_type, "created_at": "2026-01-01T00:00:00+00:00"}


class TestUpsertCompany:
    def test_second_write_wins(self, storage):
        upsert_company(storage, _company(name="Old Name"), "2026-03-01T00:00:00.000000+00:00")
        upsert_company(storage, _company(name="New Name"), "2026-03-02T00:00:00.000000+00:00")

        rows = storage.query("SELECT * FROM companies")
        assert len(rows) == 1
        assert rows[0]["name"] == "New Name"
        assert rows[0]["synced_at"] == "2026-03-02T00:00:00.000000+00:00"

    def test_created_at_preserved(self, storage):
        upsert_company(storage, _company(created_at="2026-01-01T00:00:00+00:00"), "s1")
        upsert_company(storage, _company(created_at="2026-02-02T00:00:00+00:00"), "s2")
        assert storage.scalar("SELECT created_at FROM companies") == "2026-01-01T00:00:00+00:00"

    def test_inactive_stored_as_zero(self, storage):
        upsert_company(storage, _company(is_active=False), "s")
        assert storage.scalar("SELECT is_active FROM companies") == 0

    def test_alias_set_replaced(self, storage):
        upsert_company(storage, _company(aliases=[_alias("a1", "Acme Corp"), _alias("a2", "Widgets")]), "s1")
        upsert_company(storage, _company(aliases=[_alias("a1", "Acme Corp")]), "s2")
        assert [r["alias_id"] for r in storage.query("SELECT alias_id FROM company_aliases")] == ["a1"]

    def test_search_terms_follow_name_and_aliases(self, storage):
        upsert_company(storage, _company(name="Acme Robotics", aliases=[_alias("a1", "Roboworks")]), "s1")
        terms = {(r["term"], r["source"]) for r in storage.query("SELECT term, source FROM search_terms")}
        assert terms == {("acme", "name"), ("robotics", "name"), ("roboworks", "alias")}

        upsert_company(storage, _company(name="Zenith"), "s2")
        terms = {r["term"] for r in storage.query("SELECT term FROM search_terms")}
        assert terms == {"zenith"}


class TestOtherUpserts:
    def test_drift_conflict_updates_only_percentage(self, storage):
        upsert_drift_alert(storage, validate(DriftAlert, drift_payload()), "s1")
        storage.execute("UPDATE drift_alerts SET seen_at = 'seen'")
        upsert_drift_alert(storage, validate(DriftAlert, drift_payload(drift_percentage=75.0, new_value=0.9)), "s2")

        row = storage.query_one("SELECT * FROM drift_alerts")
        assert row["drift_percentage"] == 75.0
        assert row["new_value"] == 0.6
        assert row["seen_at"] == "seen"

    def test_update_scores(self, storage):
        upsert_company(storage, _company(), "s1")
        bundle = validate(ScoreBundle, {**{k: 0.9 for k in ("final_score", "d_score", "o_score", "i_score", "m_score", "b_score", "confidence_score")}, "norm_context_version": "nc-2", "checksum": "new"})
        assert update_company_scores(storage, "gc-1", bundle, "s2") is True
        assert update_company_scores(storage, "unknown", bundle, "s2") is False
        row = storage.query_one("SELECT final_score, checksum, synced_at FROM companies")
        assert row == {"final_score": 0.9, "checksum": "new", "synced_at": "s2"}


class TestFacets:
    def _seed(self, storage):
        upsert_company(storage, _company("a", region="west", industry="saas", final_score=0.85, risk_score=0.1), "s")
        upsert_company(storage, _company("b", region="west", industry="fintech", final_score=0.3, risk_score=0.5), "s")
        upsert_company(storage, _company("c", region="east", industry="saas", final_score=1.0, risk_score=1.0), "s")
        upsert_company(storage, _company("d", region="north", is_active=False), "s")

    def test_region_facets_cover_active_regions(self, storage, clock):
        self._seed(storage)
        materialize_facets(storage, clock)
        regions = {b["bucket_value"]: b["count"] for b in load_facets(storage)["region"]}
        assert regions == {"west": 2, "east": 1}

    def test_score_and_risk_buckets(self, storage, clock):
        self._seed(storage)
        written = materialize_facets(storage, clock)
        facets = load_facets(storage)
        scores = {b["bucket_value"]: b["count"] for b in facets["score_range"]}
        risks = {b["bucket_value"]: b["count"] for b in facets["risk_level"]}

        assert written["score_range"] == 5
        assert scores == {"0-20": 0, "20-40": 1, "40-60": 0, "60-80": 0, "80-100": 2}
        assert risks == {"low": 1, "medium": 1, "high": 1}

    def test_rebuild_is_idempotent(self, storage, clock):
        self._seed(storage)
        materialize_facets(storage, clock)
        first = load_facets(storage)
        materialize_facets(storage, clock)
        assert load_facets(storage) == first

    def test_dataset_version_recorded(self, storage, clock):
        self._seed(storage)
        materialize_facets(storage, clock)
        assert {b["dataset_version"] for b in load_facets(storage)["industry"]} == {"2026.03"}
