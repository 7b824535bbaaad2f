"""Tests for notion_ingest.client module, with a mocked notion_client.AsyncClient."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from notion_client.errors import HTTPResponseError

import notion_ingest.utils as utils
from notion_ingest.client import AsyncNotionClient, get_notion_client
from notion_ingest.errors import NotFoundError, UpstreamFailure


def http_error(status: int) -> HTTPResponseError:
    request = httpx.Request("GET", "https://api.notion.com/v1/pages/page-1")
    return HTTPResponseError(httpx.Response(status, request=request))


def make_notion() -> MagicMock:
    notion = MagicMock()
    notion.pages.retrieve = AsyncMock()
    notion.blocks.children.list = AsyncMock()
    notion.databases.query = AsyncMock()
    notion.aclose = AsyncMock()
    return notion


def make_client(notion: MagicMock, **kwargs) -> AsyncNotionClient:
    kwargs.setdefault("retry_backoff", 0)
    return AsyncNotionClient(notion, **kwargs)


class TestRequest:
    """Retries, timeouts and error translation."""

    @pytest.mark.asyncio
    async def test_success(self):
        notion = make_notion()
        notion.pages.retrieve.return_value = {"id": "page-1"}
        client = make_client(notion)

        assert await client.get_page("page-1") == {"id": "page-1"}
        notion.pages.retrieve.assert_awaited_once_with(page_id="page-1")
        assert client.request_count == 1

    @pytest.mark.asyncio
    async def test_retries_retryable_status(self):
        notion = make_notion()
        notion.pages.retrieve.side_effect = [http_error(503), http_error(429), {"id": "page-1"}]
        client = make_client(notion)

        assert await client.get_page("page-1") == {"id": "page-1"}
        assert notion.pages.retrieve.await_count == 3
        assert client.request_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        notion = make_notion()
        notion.pages.retrieve.side_effect = http_error(502)
        client = make_client(notion, max_retries=3)

        with pytest.raises(UpstreamFailure):
            await client.get_page("page-1")
        assert notion.pages.retrieve.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_status(self):
        notion = make_notion()
        notion.pages.retrieve.side_effect = http_error(400)
        client = make_client(notion)

        with pytest.raises(UpstreamFailure):
            await client.get_page("page-1")
        assert notion.pages.retrieve.await_count == 1

    @pytest.mark.asyncio
    async def test_not_found(self):
        notion = make_notion()
        notion.pages.retrieve.side_effect = http_error(404)
        client = make_client(notion)

        with pytest.raises(NotFoundError):
            await client.get_page("page-1")
        assert notion.pages.retrieve.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow_retrieve(**kwargs):
            await asyncio.sleep(5)

        notion = make_notion()
        notion.pages.retrieve = slow_retrieve
        client = make_client(notion, request_timeout=0.01)

        with pytest.raises(UpstreamFailure, match="Timed out"):
            await client.get_page("page-1")

    @pytest.mark.asyncio
    async def test_network_error(self):
        notion = make_notion()
        notion.pages.retrieve.side_effect = httpx.ConnectError("connection refused")
        client = make_client(notion)

        with pytest.raises(UpstreamFailure, match="Network error"):
            await client.get_page("page-1")


class TestEndpoints:
    """Tests for list_children and query_database."""

    @pytest.mark.asyncio
    async def test_list_children(self):
        notion = make_notion()
        notion.blocks.children.list.return_value = {
            "results": [{"id": "b1"}, {"id": "b2"}],
            "has_more": True,
            "next_cursor": "abc",
        }
        client = make_client(notion)

        children = await client.list_children("page-1", page_size=2)

        assert children == [{"id": "b1"}, {"id": "b2"}]
        notion.blocks.children.list.assert_awaited_once_with(block_id="page-1", page_size=2)

    @pytest.mark.asyncio
    async def test_query_database_follows_cursor(self):
        notion = make_notion()
        notion.databases.query.side_effect = [
            {"results": [{"id": "p1"}], "has_more": True, "next_cursor": "c1"},
            {"results": [{"id": "p2"}], "has_more": False, "next_cursor": None},
        ]
        client = make_client(notion)

        pages = await client.query_database("db-1")

        assert [p["id"] for p in pages] == ["p1", "p2"]
        assert notion.databases.query.await_count == 2

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        notion = make_notion()
        async with make_client(notion) as client:
            assert isinstance(client, AsyncNotionClient)
        notion.aclose.assert_awaited_once()


class TestGetNotionClient:
    """Tests for the get_notion_client factory."""

    @pytest.mark.asyncio
    async def test_creates_client(self, monkeypatch):
        monkeypatch.setattr(utils, "_env_loaded", True)
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_test")

        client = get_notion_client(max_retries=2)
        try:
            assert isinstance(client, AsyncNotionClient)
            assert client.max_retries == 2
        finally:
            await client.close()

    def test_missing_token(self, monkeypatch):
        monkeypatch.setattr(utils, "_env_loaded", True)
        monkeypatch.delenv("NOTION_API_TOKEN", raising=False)

        with pytest.raises(ValueError, match="NOTION_API_TOKEN"):
            get_notion_client()
