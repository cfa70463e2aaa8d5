"""
Shared pytest fixtures for catalog-cache tests.

This module provides:
- A migrated in-memory storage handle
- Settings pointed at a fake catalog host
- A controllable clock
- ``make_client`` for a CatalogClient backed by ``httpx.MockTransport``

Payload factories live in ``tests._support.factories``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest

from catalog_cache.client.endpoints import CatalogClient
from catalog_cache.core.migrations import MigrationRunner
from catalog_cache.core.settings import CatalogSettings
from catalog_cache.core.storage import SQLiteStorage
from tests._support.factories import BASE_URL, FakeClock, no_sleep

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture()
def storage() -> Iterator[SQLiteStorage]:
    """Connected, fully migrated in-memory storage."""
    with SQLiteStorage(":memory:") as s:
        MigrationRunner(s, environment="test").apply_pending()
        yield s


@pytest.fixture()
def settings() -> CatalogSettings:
    return CatalogSettings(
        api_base_url=BASE_URL,
        db_path=":memory:",
        environment="test",
        page_size=100,
        max_retries=0,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        request_timeout=5.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def make_client(settings: CatalogSettings) -> Callable[..., CatalogClient]:
    """Build a ``CatalogClient`` whose requests go to *handler*."""

    def _make(handler: Handler, **settings_overrides: Any) -> CatalogClient:
        cfg = settings.model_copy(update=settings_overrides) if settings_overrides else settings
        return CatalogClient.from_settings(
            cfg,
            transport=httpx.MockTransport(handler),
            sleep=no_sleep,
        )

    return _make
