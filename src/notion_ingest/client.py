"""Notion Ingest Client - Async, retrying wrapper around the Notion API."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from notion_client import AsyncClient
from notion_client.errors import APIResponseError, HTTPResponseError, RequestTimeoutError
from notion_client.helpers import async_collect_paginated_api

from notion_ingest.errors import NotFoundError, UpstreamFailure
from notion_ingest.utils import get_notion_token

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 5
MAX_CONCURRENT_REQUESTS = 10
REQUEST_TIMEOUT = 30.0
PAGE_SIZE = 100

RETRYABLE_STATUSES = frozenset([429, 502, 503, 504])


class AsyncNotionClient:
    """Wrapper around notion_client.AsyncClient with retries and timeouts.

    Retries 429 (rate limit) and 502/503/504 responses with exponential
    backoff, caps the number of in-flight requests, and bounds every call
    with an explicit timeout. Failures surface as NotFoundError (404) or
    UpstreamFailure (anything else).

    Attributes:
        notion: The underlying notion_client.AsyncClient instance.
        request_count: Total number of API requests made.
    """

    def __init__(
        self,
        notion: AsyncClient,
        request_timeout: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        max_concurrent_requests: int = MAX_CONCURRENT_REQUESTS,
        retry_backoff: float = 1.0,
    ):
        """Initialize the client.

        Args:
            notion: A configured notion_client.AsyncClient instance.
            request_timeout: Seconds before a single request is abandoned.
            max_retries: Attempts per request for retryable errors.
            max_concurrent_requests: Cap on requests in flight at once.
            retry_backoff: Base delay in seconds; attempt n waits retry_backoff * 2**n.
        """
        self.notion = notion
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self.request_count: int = 0

    async def __aenter__(self) -> "AsyncNotionClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self.notion.aclose()

    async def _handle_retryable_error(
        self, e: APIResponseError | HTTPResponseError, attempt: int
    ) -> bool:
        """Handle API errors with exponential backoff (429, 502, 503, 504).

        Args:
            e: The API response error (APIResponseError or HTTPResponseError).
            attempt: Current retry attempt number (0-indexed).

        Returns:
            True if should retry, False if should give up.
        """
        if e.status not in RETRYABLE_STATUSES:
            return False
        if attempt >= self.max_retries - 1:
            logger.error(f"Max retry attempts reached after {e.status} errors")
            return False
        wait_time = self.retry_backoff * 2 ** attempt
        logger.warning(
            f"API error {e.status}, waiting {wait_time}s before retry "
            f"(attempt {attempt + 1}/{self.max_retries})..."
        )
        await asyncio.sleep(wait_time)
        return True

    async def _request(self, description: str, make_call: Callable[[], Awaitable[T]]) -> T:
        """Run one API call with timeout, retries and error translation.

        Args:
            description: Human readable name of the call, used in errors.
            make_call: Zero-argument callable creating a fresh coroutine per attempt.

        Raises:
            NotFoundError: If Notion answers 404.
            UpstreamFailure: On timeouts, network errors, or API errors after retries.
        """
        for attempt in range(self.max_retries):
            self.request_count += 1
            try:
                async with self._semaphore:
                    return await asyncio.wait_for(make_call(), timeout=self.request_timeout)
            except (asyncio.TimeoutError, RequestTimeoutError) as e:
                raise UpstreamFailure(
                    f"Timed out after {self.request_timeout}s while {description}"
                ) from e
            except (APIResponseError, HTTPResponseError) as e:
                if e.status == 404:
                    raise NotFoundError(f"Not found while {description}") from e
                if await self._handle_retryable_error(e, attempt):
                    continue
                raise UpstreamFailure(
                    f"Notion API error {e.status} while {description}: {e}"
                ) from e
            except httpx.HTTPError as e:
                raise UpstreamFailure(f"Network error while {description}: {e}") from e
        raise UpstreamFailure(f"Failed {description} after {self.max_retries} retries")

    async def get_page(self, page_id: str) -> dict[str, Any]:
        """Get page metadata (properties, url, last_edited_time).

        Args:
            page_id: The Notion page ID.

        Returns:
            Page object from the Notion API.
        """
        return await self._request(
            f"retrieving page {page_id}",
            lambda: self.notion.pages.retrieve(page_id=page_id),
        )

    async def list_children(self, block_id: str, page_size: int = PAGE_SIZE) -> list[dict[str, Any]]:
        """List the child blocks of a block or page.

        Only the first page of results is read; blocks with more than
        ``page_size`` children are truncated.

        Args:
            block_id: The Notion block or page ID.
            page_size: Maximum number of children to return (Notion caps at 100).

        Returns:
            List of child block dictionaries.
        """
        response = await self._request(
            f"listing children of {block_id}",
            lambda: self.notion.blocks.children.list(block_id=block_id, page_size=page_size),
        )
        if response.get("has_more"):
            logger.debug(f"Block {block_id} has more than {page_size} children, ignoring the rest")
        return list(response.get("results", []))

    async def query_database(self, database_id: str) -> list[dict[str, Any]]:
        """Get every page of a Notion database, following pagination.

        Args:
            database_id: The Notion database ID.

        Returns:
            List of page objects.
        """
        return await self._request(
            f"querying database {database_id}",
            lambda: async_collect_paginated_api(
                self.notion.databases.query, database_id=database_id
            ),
        )


def get_notion_client(**kwargs: Any) -> AsyncNotionClient:
    """Factory function to create a configured AsyncNotionClient.

    Reads the NOTION_API_TOKEN from environment. Keyword arguments are passed
    to AsyncNotionClient (timeouts, retries, concurrency).

    Returns:
        A configured AsyncNotionClient instance.

    Raises:
        ValueError: If NOTION_API_TOKEN environment variable is not set.
    """
    token = get_notion_token()
    notion = AsyncClient(auth=token)
    return AsyncNotionClient(notion, **kwargs)
