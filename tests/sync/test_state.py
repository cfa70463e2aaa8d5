"""Tests for the sync_state store."""

from __future__ import annotations

import pytest

from catalog_cache.core.errors import StaleLockError
from catalog_cache.sync.state import ResourceType, SyncStateStore, SyncStatus


@pytest.fixture()
def store(storage, clock):
    return SyncStateStore(storage, clock=clock, lock_ttl_seconds=600)


class TestReads:
    def test_seeded_rows_are_pending(self, store):
        states = store.list_all()
        assert [s.resource_type for s in states] == list(ResourceType)
        assert all(s.sync_status is SyncStatus.PENDING for s in states)

    def test_never_synced_needs_sync(self, store):
        assert store.needs_sync(ResourceType.COMPANIES, 3600)


class TestTransitions:
    def test_begin_complete(self, store, clock):
        state = store.begin(ResourceType.COMPANIES)
        assert state.sync_status is SyncStatus.SYNCING
        assert state.started_at == clock.now

        store.save_cursor(ResourceType.COMPANIES, "c1")
        clock.advance(5)
        done = store.complete(ResourceType.COMPANIES, records_synced=10, etag='"e1"')

        assert done.sync_status is SyncStatus.SUCCESS
        assert done.last_sync_at == clock.now
        assert done.last_cursor is None
        assert done.last_etag == '"e1"'
        assert done.records_synced == 10

    def test_complete_without_etag_keeps_previous(self, store):
        store.begin("companies")
        store.complete("companies", 1, etag='"e1"')
        store.begin("companies")
        assert store.complete("companies", 0, etag=None).last_etag == '"e1"'

    def test_fail_keeps_cursor_and_etag(self, store):
        store.begin("companies")
        store.complete("companies", 1, etag='"e1"')
        store.begin("companies")
        store.save_cursor("companies", "c7")
        state = store.fail("companies", "HTTP 500", records_synced=100)

        assert state.sync_status is SyncStatus.ERROR
        assert state.error_message == "HTTP 500"
        assert state.last_cursor == "c7"
        assert state.last_etag == '"e1"'
        assert state.records_synced == 100

    def test_begin_clears_error_message(self, store):
        store.begin("drift")
        store.fail("drift", "boom")
        assert store.begin("drift").error_message is None

    def test_reset_forgets_cursor_and_etag(self, store):
        store.begin("runs")
        store.save_cursor("runs", "c")
        store.fail("runs", "x")
        store.reset("runs")
        state = store.get("runs")
        assert state.last_cursor is None and state.last_etag is None


class TestLock:
    def test_overlap_rejected(self, store):
        store.begin(ResourceType.COMPANIES)
        with pytest.raises(StaleLockError):
            store.begin(ResourceType.COMPANIES)

    def test_other_resources_independent(self, store):
        store.begin(ResourceType.COMPANIES)
        assert store.begin(ResourceType.DRIFT).is_syncing

    def test_crashed_pass_taken_over_after_ttl(self, store, clock):
        store.begin(ResourceType.COMPANIES)
        clock.advance(601)
        assert store.begin(ResourceType.COMPANIES).started_at == clock.now


class TestFreshness:
    def test_fresh_then_stale(self, store, clock):
        store.begin("companies")
        store.complete("companies", 1)
        assert not store.needs_sync("companies", 3600)
        clock.advance(3601)
        assert store.needs_sync("companies", 3600)

    def test_error_always_needs_sync(self, store):
        store.begin("companies")
        store.complete("companies", 1)
        store.begin("companies")
        store.fail("companies", "x")
        assert store.needs_sync("companies", 3600)

    def test_status_report(self, store, clock):
        report = store.status_report(3600)
        assert report["is_stale"] is True
        assert set(report["resources"]) == {rt.value for rt in ResourceType}

        store.begin("companies")
        store.complete("companies", 7)
        report = store.status_report(3600)
        assert report["is_stale"] is False
        assert report["resources"]["companies"]["records_synced"] == 7
        assert report["resources"]["drift"]["sync_status"] == "pending"
