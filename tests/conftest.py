"""Shared pytest fixtures and fakes for notion_ingest tests.

FakeNotionClient stands in for AsyncNotionClient: it serves scripted pages
and block children and records every children-listing call. RecordingCache
is an InMemoryCache that logs deletions and can be switched into a failing
mode to exercise the cache layer's fallbacks.
"""

import asyncio

import pytest

from notion_ingest.cache import InMemoryCache, PageCacheLayer
from notion_ingest.errors import CacheFailure, NotFoundError, UpstreamFailure
from notion_ingest.store import InMemoryPageStore


# Helper functions for creating Notion API objects


def rich_text(text: str) -> list[dict]:
    """Build a rich_text array the way the Notion API returns it."""
    if not text:
        return []
    return [{"type": "text", "text": {"content": text}, "plain_text": text}]


def make_block(block_id: str, block_type: str, text: str = "", has_children: bool = False) -> dict:
    """Build a block object as returned by blocks.children.list."""
    if block_type in ("image", "table"):
        payload = {}
    else:
        payload = {"rich_text": rich_text(text)}
    return {
        "object": "block",
        "id": block_id,
        "type": block_type,
        "has_children": has_children,
        block_type: payload,
    }


def make_page_object(
    page_id: str,
    title: str | None = "Test Page",
    description: str | None = None,
    author: dict | None = None,
    date: str | None = None,
    title_property: str = "Name",
) -> dict:
    """Build a page object as returned by pages.retrieve."""
    properties: dict = {}
    if title is not None:
        properties[title_property] = {"type": "title", "title": rich_text(title)}
    if description is not None:
        properties["Description"] = {"type": "rich_text", "rich_text": rich_text(description)}
    if author is not None:
        properties["author"] = {"type": "people", "people": [author]}
    if date is not None:
        properties["Date"] = {"type": "date", "date": {"start": date, "end": None}}
    return {
        "object": "page",
        "id": page_id,
        "url": f"https://www.notion.so/{page_id.replace('-', '')}",
        "last_edited_time": "2025-03-01T12:00:00.000Z",
        "properties": properties,
    }


class FakeNotionClient:
    """Scripted remote content source.

    Attributes:
        children: block id -> list of child block objects.
        pages: page id -> page object.
        database_pages: page ids returned by query_database.
        failing_blocks: block ids whose children listing raises UpstreamFailure.
        failing_pages: page ids whose retrieval raises UpstreamFailure.
        list_calls: block ids passed to list_children, in call order.
    """

    def __init__(
        self,
        children: dict[str, list[dict]] | None = None,
        pages: dict[str, dict] | None = None,
        database_pages: list[str] | None = None,
        failing_blocks: set[str] | None = None,
        failing_pages: set[str] | None = None,
    ):
        self.children = children or {}
        self.pages = pages or {}
        self.database_pages = database_pages or []
        self.failing_blocks = failing_blocks or set()
        self.failing_pages = failing_pages or set()
        self.list_calls: list[str] = []
        self.database_queries = 0

    async def list_children(self, block_id: str, page_size: int = 100) -> list[dict]:
        self.list_calls.append(block_id)
        # Yield so batch members interleave like real requests
        await asyncio.sleep(0)
        if block_id in self.failing_blocks:
            raise UpstreamFailure(f"Simulated failure listing {block_id}")
        return [dict(block) for block in self.children.get(block_id, [])[:page_size]]

    async def get_page(self, page_id: str) -> dict:
        await asyncio.sleep(0)
        if page_id in self.failing_pages:
            raise UpstreamFailure(f"Simulated failure retrieving {page_id}")
        if page_id not in self.pages:
            raise NotFoundError(f"Not found while retrieving page {page_id}")
        return self.pages[page_id]

    async def query_database(self, database_id: str) -> list[dict]:
        self.database_queries += 1
        return [{"object": "page", "id": page_id} for page_id in self.database_pages]


class RecordingCache(InMemoryCache):
    """InMemoryCache that records deletes and can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False
        self.deleted: list[str] = []

    def _check(self, operation: str, key: str) -> None:
        if self.fail:
            raise CacheFailure(f"Simulated cache {operation} failure for {key}")

    async def get(self, key):
        self._check("get", key)
        return await super().get(key)

    async def set(self, key, value, ttl_seconds):
        self._check("set", key)
        await super().set(key, value, ttl_seconds)

    async def delete(self, key):
        self._check("delete", key)
        self.deleted.append(key)
        await super().delete(key)

    async def scan_by_prefix(self, prefix):
        self._check("scan", prefix)
        return await super().scan_by_prefix(prefix)

    async def stats(self):
        self._check("stats", "*")
        return await super().stats()


@pytest.fixture
def store():
    return InMemoryPageStore()


@pytest.fixture
def cache():
    return RecordingCache()


@pytest.fixture
def cache_layer(cache, store):
    return PageCacheLayer(cache, store)
