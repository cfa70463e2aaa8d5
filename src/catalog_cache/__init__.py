"""catalog-cache: a local SQLite cache of a remote company catalog.

Packages:
    core        settings, logging, errors, storage, schema, migrations
    execution   retry and deadline primitives
    client      HTTP client, pagination and typed endpoints
    validation  pydantic models and parse helpers
    sync        sync engine, state store, upserts and facets
    query       search, company detail and user overlay
    cli         ``catalog-cache`` command line
"""

__version__ = "0.1.0"

from catalog_cache.core.errors import CatalogError
from catalog_cache.core.settings import CatalogSettings, get_settings
from catalog_cache.core.storage import SQLiteStorage

__all__ = ["CatalogError", "CatalogSettings", "SQLiteStorage", "get_settings", "__version__"]
