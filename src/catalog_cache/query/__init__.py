"""Local search, company detail and user overlay."""

from catalog_cache.query.detail import CompanyDetail
from catalog_cache.query.engine import QueryEngine
from catalog_cache.query.search import SearchResult

__all__ = ["CompanyDetail", "QueryEngine", "SearchResult"]
