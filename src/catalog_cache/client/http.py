"""
HTTP transport for the remote catalog API.

Wraps ``httpx.AsyncClient`` with the catalog's request conventions and maps
every failure onto the error taxonomy so the retry layer can decide what to
do with it.

Architecture:
    ::

        CatalogHttpClient.request(method, path, params, etag)
              │
              ▼
        RetryContext.run_async ── ExponentialBackoff (retryable errors only)
              │
              ▼
        _send_once ── with_deadline_async(request_timeout)
              │
              ├── 2xx  → HttpResult(data, etag, cursor)
              ├── 304  → HttpResult(not_modified=True)
              ├── 429  → RateLimitError (retry_after from Retry-After)
              ├── 5xx  → TransportError
              ├── 404  → NotFoundError
              ├── 4xx  → ClientError
              └── timeout / connection failure → TransportError

Request conventions:
    - ``X-Tenant-Mode`` and ``X-Audience-Scope`` on every request
    - ``Authorization: Bearer`` when a token is configured
    - ``If-None-Match`` when an ETag is supplied
    - list-valued query parameters are sent as repeated keys
    - the next cursor is read from ``X-Next-Cursor``, else ``next_cursor``
      in the body

Tags:
    http, httpx, retry, etag, catalog-cache
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from catalog_cache.core.errors import (
    CatalogError,
    ClientError,
    NotFoundError,
    RateLimitError,
    TransportError,
)
from catalog_cache.core.logging import get_logger
from catalog_cache.core.settings import CatalogSettings
from catalog_cache.execution.retry import (
    ExponentialBackoff,
    NoRetry,
    RetryContext,
    RetryStrategy,
)
from catalog_cache.execution.timeout import TimeoutExpired, with_deadline_async

logger = get_logger(__name__)

USER_AGENT = "catalog-cache/0.1"


@dataclass
class HttpResult:
    """Decoded response from one logical request."""

    data: Any = None
    etag: str | None = None
    cursor: str | None = None
    not_modified: bool = False
    status_code: int = 200


def build_params(params: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Flatten query parameters, repeating keys for list values."""
    if not params:
        return []
    flat: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if isinstance(item, bool):
                item = "true" if item else "false"
            flat.append((key, str(item)))
    return flat


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # HTTP-date form is not used by the catalog API
        return None


class CatalogHttpClient:
    """Async HTTP client for the remote catalog.

    Args:
        settings: Base URL, headers, timeout and retry policy
        transport: Optional httpx transport (``httpx.MockTransport`` in tests)
        retry_strategy: Overrides the backoff built from settings
        sleep: Awaitable used between retries
    """

    def __init__(
        self,
        settings: CatalogSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_strategy: RetryStrategy | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.settings = settings
        self._timeout = settings.request_timeout
        self._retry_strategy = retry_strategy or ExponentialBackoff(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )
        self._sleep = sleep

        headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "X-Tenant-Mode": settings.tenant_mode,
            "X-Audience-Scope": settings.audience_scope,
        }
        if settings.api_token:
            headers["Authorization"] = f"Bearer {settings.api_token}"

        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> CatalogHttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        etag: str | None = None,
        retry: bool = True,
    ) -> HttpResult:
        return await self.request("GET", path, params=params, etag=etag, retry=retry)

    async def post(
        self,
        path: str,
        body: Any = None,
        *,
        retry: bool = True,
    ) -> HttpResult:
        return await self.request("POST", path, json=body, retry=retry)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        etag: str | None = None,
        retry: bool = True,
    ) -> HttpResult:
        """Send one logical request, retrying transient failures."""

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "client.retry",
                method=method,
                path=path,
                attempt=attempt,
                delay=round(delay, 3),
                elapsed=round(ctx.elapsed_seconds, 3),
                error=str(error),
            )

        ctx = RetryContext(
            strategy=self._retry_strategy if retry else NoRetry(),
            on_retry=on_retry,
        )
        if self._sleep is not None:
            ctx.sleep = self._sleep

        return await ctx.run_async(
            self._send_once, method, path, build_params(params), json, etag
        )

    async def _send_once(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]],
        json: Any,
        etag: str | None,
    ) -> HttpResult:
        headers = {"If-None-Match": etag} if etag else {}
        url = f"{self.settings.api_base_url}{path}"

        try:
            async with with_deadline_async(self._timeout, f"{method} {path}"):
                response = await self._client.request(
                    method, path, params=params or None, json=json, headers=headers
                )
        except TimeoutExpired as e:
            raise TransportError(str(e), cause=e).with_context(url=url) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"{method} {path} failed: {e.__class__.__name__}: {e}", cause=e
            ).with_context(url=url) from e

        logger.debug("client.response", method=method, path=path, status=response.status_code)
        return self._decode(response, method, path, url, etag)

    def _decode(
        self,
        response: httpx.Response,
        method: str,
        path: str,
        url: str,
        etag: str | None,
    ) -> HttpResult:
        status = response.status_code

        if status == 304:
            return HttpResult(
                etag=response.headers.get("ETag") or etag,
                not_modified=True,
                status_code=status,
            )

        if status >= 400:
            raise self._classify(response, method, path).with_context(
                url=url, http_status=status
            )

        try:
            data = response.json() if response.content else None
        except ValueError as e:
            raise TransportError(
                f"{method} {path} returned a non-JSON body", retryable=False, cause=e
            ).with_context(url=url, http_status=status) from e

        cursor = response.headers.get("X-Next-Cursor")
        if not cursor and isinstance(data, dict):
            cursor = data.get("next_cursor") or None

        return HttpResult(
            data=data,
            etag=response.headers.get("ETag"),
            cursor=cursor,
            status_code=status,
        )

    @staticmethod
    def _classify(response: httpx.Response, method: str, path: str) -> CatalogError:
        status = response.status_code
        reason = response.reason_phrase or "error"
        message = f"{method} {path} returned {status} {reason}"

        if status == 429:
            return RateLimitError(
                message,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status >= 500:
            return TransportError(message)
        if status == 404:
            return NotFoundError(message)
        return ClientError(message)


__all__ = ["CatalogHttpClient", "HttpResult", "build_params"]
