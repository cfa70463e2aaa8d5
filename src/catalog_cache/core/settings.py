"""Environment-driven settings for the catalog cache.

Every knob the remote client, the sync engine, and the storage layer read
lives on :class:`CatalogSettings`. Values come from ``CATALOG_*`` environment
variables or a ``.env`` file; unknown variables are ignored.

Examples:
    >>> from catalog_cache.core.settings import CatalogSettings
    >>> settings = CatalogSettings(db_path=":memory:", max_retries=0)
    >>> settings.freshness_window_seconds
    3600

Tags:
    settings, configuration, pydantic, environment, catalog-cache
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogSettings(BaseSettings):
    """Settings shared by the client, sync engine, query engine and CLI.

    Fields
    ──────
    api_base_url       : Root URL of the remote catalog API
    api_token          : Optional bearer token sent on every request
    tenant_mode        : Sent as ``X-Tenant-Mode``
    audience_scope     : Sent as ``X-Audience-Scope``
    db_path            : SQLite database file (``:memory:`` for tests)
    environment        : ``development`` / ``production``; resets are refused in production
    page_size          : Items requested per page during sync
    request_timeout    : Per-request timeout in seconds
    max_retries        : Retries after the first attempt for transient failures
    retry_base_delay   : First backoff delay in seconds
    retry_max_delay    : Backoff cap in seconds
    freshness_window_seconds : A resource older than this needs a sync
    evidence_window_seconds  : Companies synced within this window get evidence
    evidence_company_limit   : Cap on companies per evidence pass
    sync_lock_ttl_seconds    : A ``syncing`` row older than this is a crashed pass
    """

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Remote catalog ───────────────────────────────────────────
    api_base_url: str = "https://api.echoridge.example"
    api_token: str | None = None
    tenant_mode: Literal["universal"] = "universal"
    audience_scope: Literal["public", "partner", "enterprise"] = "public"

    # ── Storage ──────────────────────────────────────────────────
    db_path: str = Field(
        default_factory=lambda: str(Path.home() / ".catalog-cache" / "catalog.db"),
        description="SQLite database file",
    )
    environment: Literal["development", "test", "production"] = "development"

    # ── Remote client behaviour ──────────────────────────────────
    page_size: int = Field(default=100, ge=1, le=1000)
    request_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)

    # ── Sync policy ──────────────────────────────────────────────
    freshness_window_seconds: int = Field(default=3600, ge=0)
    evidence_window_seconds: int = Field(default=3600, ge=0)
    evidence_company_limit: int = Field(default=100, ge=1)
    sync_lock_ttl_seconds: int = Field(default=3600, ge=1)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None


@lru_cache(maxsize=1)
def get_settings() -> CatalogSettings:
    """Return the process-wide settings instance."""
    return CatalogSettings()


__all__ = ["CatalogSettings", "get_settings"]
