"""
Query engine: read access to the cache plus the user overlay.

The engine holds no state of its own beyond the storage handle; every call
reads the current committed contents, so results reflect whatever the last
sync pass committed.

Examples:
    >>> engine = QueryEngine(storage)
    >>> result = engine.search_companies({"q": "acme", "sort": "relevance"})
    >>> detail = engine.get_company_detail(result.companies[0]["global_company_id"], user_id="u1")

Tags:
    query, search, overlay, catalog-cache
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from catalog_cache.core.storage import SQLiteStorage
from catalog_cache.core.timestamps import Clock, utc_now
from catalog_cache.query import detail as _detail
from catalog_cache.query import search as _search
from catalog_cache.query.overlay import OverlayStore
from catalog_cache.sync.facets import load_facets
from catalog_cache.validation.models import SearchOptions


class QueryEngine(OverlayStore):
    """Search, company detail and overlay CRUD over one storage handle."""

    def __init__(self, storage: SQLiteStorage, *, clock: Clock = utc_now) -> None:
        super().__init__(storage, clock=clock)

    def search_companies(
        self, options: SearchOptions | Mapping[str, Any] | None = None
    ) -> _search.SearchResult:
        return _search.search_companies(self.storage, options)

    def get_company_detail(
        self, global_company_id: str, user_id: str | None = None
    ) -> _detail.CompanyDetail | None:
        return _detail.get_company_detail(self.storage, global_company_id, user_id)

    def get_facets(self) -> dict[str, list[dict]]:
        """Materialized facet buckets from the last sync, unfiltered."""
        return load_facets(self.storage)


__all__ = ["QueryEngine"]
