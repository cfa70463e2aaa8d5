"""Remote catalog client."""

from catalog_cache.client.endpoints import CatalogClient
from catalog_cache.client.http import CatalogHttpClient, HttpResult
from catalog_cache.client.pagination import Page, PageCursor

__all__ = ["CatalogClient", "CatalogHttpClient", "HttpResult", "Page", "PageCursor"]
