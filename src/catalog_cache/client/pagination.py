"""Pull-based cursor pagination.

A :class:`PageCursor` walks a cursor-paginated endpoint one page per
``await cursor.next()``. It is lazy (nothing is fetched until asked),
finite (it stops after a page without ``next_cursor`` or after a 304) and
non-restartable (once exhausted it keeps returning ``None``; a fresh
sequence needs a fresh cursor object).

Example:
    >>> pages = client.company_pages(updated_since="2026-01-01T00:00:00+00:00")
    >>> while (page := await pages.next()) is not None:
    ...     store(page.items)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Page:
    """One page of a list endpoint.

    ``not_modified`` distinguishes a 304 (nothing changed since the supplied
    ETag) from a 200 that happens to carry no items.
    """

    items: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None
    etag: str | None = None
    not_modified: bool = False
    total: int | None = None
    dataset_version: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)


FetchPage = Callable[[str | None, str | None], Awaitable[Page]]


class PageCursor:
    """Explicit cursor over a paginated endpoint.

    Args:
        fetch: ``fetch(cursor, etag) -> Page`` for a single page
        cursor: Position to resume from (``None`` starts at the beginning)
        etag: Sent with the first request only
    """

    def __init__(self, fetch: FetchPage, *, cursor: str | None = None, etag: str | None = None):
        self._fetch = fetch
        self._cursor = cursor
        self._etag = etag
        self.from_start = cursor is None
        self._exhausted = False
        self.pages_fetched = 0
        # ETag returned with the first page
        self.etag: str | None = None

    @property
    def cursor(self) -> str | None:
        """Cursor the next request will send."""
        return self._cursor

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    async def next(self) -> Page | None:
        """Fetch the next page, or ``None`` once the sequence is done.

        A failed fetch leaves the position unchanged.
        """
        if self._exhausted:
            return None

        etag = self._etag if self.pages_fetched == 0 else None
        page = await self._fetch(self._cursor, etag)
        if self.pages_fetched == 0:
            self.etag = page.etag
        self.pages_fetched += 1

        if page.not_modified or not page.next_cursor:
            self._exhausted = True
            self._cursor = None
        else:
            self._cursor = page.next_cursor
        return page

    def __aiter__(self) -> PageCursor:
        return self

    async def __anext__(self) -> Page:
        page = await self.next()
        if page is None:
            raise StopAsyncIteration
        return page


__all__ = ["Page", "PageCursor", "FetchPage"]
