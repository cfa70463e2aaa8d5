"""Tests for the pull-based PageCursor."""

from __future__ import annotations

import pytest

from catalog_cache.client.pagination import Page, PageCursor
from catalog_cache.core.errors import TransportError


def _pages(*pages: Page):
    calls: list[tuple[str | None, str | None]] = []
    queue = list(pages)

    async def fetch(cursor, etag):
        calls.append((cursor, etag))
        page = queue.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    return fetch, calls


class TestPageCursor:
    @pytest.mark.asyncio
    async def test_walks_until_no_next_cursor(self):
        fetch, calls = _pages(
            Page(items=[{"a": 1}], next_cursor="c1", etag='"e1"'),
            Page(items=[{"a": 2}], next_cursor="c2", etag='"e2"'),
            Page(items=[{"a": 3}]),
        )
        pages = PageCursor(fetch, etag='"old"')
        batches = [p.items async for p in pages]

        assert batches == [[{"a": 1}], [{"a": 2}], [{"a": 3}]]
        assert calls == [(None, '"old"'), ("c1", None), ("c2", None)]
        assert pages.exhausted
        assert pages.etag == '"e1"'
        assert await pages.next() is None

    @pytest.mark.asyncio
    async def test_not_modified_stops(self):
        fetch, calls = _pages(Page(not_modified=True, etag='"e1"'))
        pages = PageCursor(fetch, etag='"e1"')
        page = await pages.next()
        assert page.not_modified
        assert await pages.next() is None
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_empty_page_is_not_not_modified(self):
        fetch, _ = _pages(Page(items=[]))
        page = await PageCursor(fetch).next()
        assert page.items == []
        assert page.not_modified is False

    @pytest.mark.asyncio
    async def test_resume_cursor(self):
        fetch, calls = _pages(Page(items=[], next_cursor=None))
        pages = PageCursor(fetch, cursor="c5")
        await pages.next()
        assert calls == [("c5", None)]
        assert pages.from_start is False

    @pytest.mark.asyncio
    async def test_failure_keeps_position(self):
        fetch, calls = _pages(
            Page(items=[{"a": 1}], next_cursor="c1"),
            TransportError("boom"),
        )
        pages = PageCursor(fetch)
        await pages.next()
        with pytest.raises(TransportError):
            await pages.next()
        assert pages.cursor == "c1"
        assert not pages.exhausted

    @pytest.mark.asyncio
    async def test_fresh_cursor_starts_over(self):
        fetch, calls = _pages(Page(items=[1]), Page(items=[2]))
        assert [p.items async for p in PageCursor(fetch)] == [[1]]
        assert [p.items async for p in PageCursor(fetch)] == [[2]]
        assert calls == [(None, None), (None, None)]
