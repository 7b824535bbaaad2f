"""Notion Ingest Sync - Pull Notion pages into the local page store.

PageSyncer fetches a page's metadata and block tree, renders its plain text,
upserts the resulting Page and invalidates the affected cache keys. It also
owns the other mutation paths (delete, re-analysis) so that every write goes
through the same invalidation rules.

Concurrent syncs of the same page are not serialized: the store's upsert is
last-writer-wins.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Protocol

from notion_ingest.errors import NotFoundError, StoreFailure
from notion_ingest.extract import extract_page_metadata
from notion_ingest.fetch import BATCH_SIZE, MAX_DEPTH, BlockTreeFetcher
from notion_ingest.models import Author, Page
from notion_ingest.render import render_page
from notion_ingest.utils import get_database_id

if TYPE_CHECKING:
    from notion_ingest.cache import PageCacheLayer
    from notion_ingest.client import AsyncNotionClient
    from notion_ingest.store import PageStore

logger = logging.getLogger(__name__)

REVIEW_OBJECTIVE = (
    "Review this content and provide a detailed assessment of its quality, "
    "structure, and clarity."
)
REVIEW_FORMAT = """Please provide:
1. A quality rating on a scale of 1-10
2. A brief summary (2-3 sentences)
3. Strengths of the content (2-3 points)
4. Areas for improvement (2-3 points)
5. Overall recommendation"""


class TextAnalyzer(Protocol):
    """Text-analysis service: generates text from a document and a prompt."""

    async def analyze(self, text: str, prompt: str) -> str:
        ...


def create_default_system_prompt(
    title: str | None = None,
    objective: str | None = None,
    response_format: str | None = None,
) -> str:
    """Build the instruction prompt sent ahead of a page's plain text.

    Args:
        title: Page title, mentioned in the prompt when known.
        objective: What the analysis should achieve.
        response_format: Expected shape of the answer.

    Returns:
        Prompt text ending with a "CONTENT:" marker.
    """
    about = f' about "{title}"' if title else ""
    return (
        "You are an expert content processor and knowledge analyzer. Your task is "
        f"to process the following Notion page content{about}.\n\n"
        f"{objective or 'Analyze this content and extract the key information, main points, and insights.'}\n\n"
        f"{response_format or 'Provide a clear summary and highlight the most important takeaways.'}\n\n"
        "CONTENT:"
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PageSyncer:
    """Synchronizes Notion pages into a PageStore and keeps the cache consistent.

    Sync methods never raise: failures are logged and reported as False.

    Attributes:
        client: Remote content source (AsyncNotionClient or compatible).
        store: Authoritative PageStore.
        cache: Optional PageCacheLayer to invalidate after writes.
        database_id: Notion database listed by sync_all_pages.
    """

    def __init__(
        self,
        client: "AsyncNotionClient",
        store: "PageStore",
        cache: "PageCacheLayer | None" = None,
        database_id: str | None = None,
        max_depth: int = MAX_DEPTH,
        batch_size: int = BATCH_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.store = store
        self.cache = cache
        self.database_id = database_id if database_id is not None else get_database_id()
        self.max_depth = max_depth
        self.batch_size = batch_size
        self._clock = clock

    async def build_page(self, page_id: str, owner_id: str) -> Page:
        """Fetch a Notion page and assemble its Page record (not stored).

        Raises:
            NotFoundError, UpstreamFailure: If the page or its root block listing fails.
        """
        remote = await self.client.get_page(page_id)
        metadata = extract_page_metadata(remote)

        logger.debug(f"Fetching blocks for page {page_id}")
        fetcher = BlockTreeFetcher(
            self.client, max_depth=self.max_depth, batch_size=self.batch_size
        )
        blocks = await fetcher.fetch(page_id)
        if fetcher.failures:
            logger.warning(
                f"Page {page_id}: {len(fetcher.failures)} subtrees could not be fetched "
                "and were stored without children"
            )

        now = self._clock()
        page = Page(
            external_id=page_id,
            owner_id=owner_id,
            url=metadata["url"],
            title=metadata["title"],
            description=metadata["description"],
            author=Author(**metadata["author"]) if metadata["author"] else None,
            created_date=metadata["created_date"],
            blocks=blocks,
            last_synced_at=now,
            source_last_edited_at=metadata["last_edited_time"],
            updated_at=now,
        )
        page.plain_text = render_page(page)
        return page

    async def _sync_page(self, page_id: str, owner_id: str, invalidate_list: bool) -> bool:
        logger.info(f"Starting sync for Notion page {page_id}")
        try:
            page = await self.build_page(page_id, owner_id)
            await self.store.upsert_page(page)
        except Exception as e:
            logger.error(f"Error syncing page {page_id}: {type(e).__name__}: {e}")
            return False

        if self.cache is not None:
            await self.cache.invalidate_page(page_id, owner_id if invalidate_list else None)

        logger.info(f"Successfully synced page {page_id}")
        return True

    async def sync_page(self, page_id: str, owner_id: str) -> bool:
        """Sync one Notion page into the store.

        On success the page's cached detail and the owner's cached page list
        are invalidated before returning.

        Args:
            page_id: Notion page ID.
            owner_id: Internal owner ID the page is stored under.

        Returns:
            True on success, False if anything failed (the cause is logged).
        """
        return await self._sync_page(page_id, owner_id, invalidate_list=True)

    async def sync_all_pages(self, owner_id: str) -> bool:
        """Sync every page of the configured Notion database.

        Pages are synced concurrently and independently; the owner's cached
        page list is invalidated once after all of them finish.

        Args:
            owner_id: Internal owner ID the pages are stored under.

        Returns:
            True if at least one page synced. False if none did, if the
            database query failed, or if no database ID is configured.
        """
        logger.info(f"Starting sync of all Notion pages for owner {owner_id}")

        if not self.database_id:
            logger.error("Notion database ID is not configured")
            return False

        try:
            results = await self.client.query_database(self.database_id)
        except Exception as e:
            logger.error(f"Error querying Notion database {self.database_id}: {e}")
            return False

        page_ids = [r["id"] for r in results if isinstance(r, dict) and r.get("id")]
        logger.info(f"Found {len(page_ids)} pages in Notion database")

        outcomes = await asyncio.gather(
            *(self._sync_page(page_id, owner_id, invalidate_list=False) for page_id in page_ids)
        )

        if self.cache is not None:
            await self.cache.invalidate_owner(owner_id)

        success_count = sum(1 for ok in outcomes if ok)
        logger.info(f"Successfully synced {success_count} out of {len(page_ids)} pages")
        return success_count > 0

    async def sync_owners(self, owner_ids: list[str]) -> int:
        """Run sync_all_pages for each owner in turn (scheduled sync).

        Returns:
            Number of owners whose bulk sync succeeded.
        """
        logger.info(f"Starting scheduled sync for {len(owner_ids)} owners")
        success_count = 0
        for owner_id in owner_ids:
            if await self.sync_all_pages(owner_id):
                success_count += 1
        logger.info(f"Synced Notion pages for {success_count} out of {len(owner_ids)} owners")
        return success_count

    async def delete_page(self, external_id: str, owner_id: str) -> bool:
        """Delete a stored page and drop its cache entries.

        Returns:
            True if a page was deleted, False if none existed or the store failed.
        """
        try:
            removed = await self.store.delete_page(external_id, owner_id)
        except Exception as e:
            logger.error(f"Error deleting page {external_id}: {e}")
            return False

        if self.cache is not None:
            await self.cache.invalidate_page(external_id, owner_id)

        if not removed:
            logger.warning(f"Page {external_id} not found for owner {owner_id}")
        return removed

    async def analyze_page(
        self,
        external_id: str,
        owner_id: str,
        analyzer: TextAnalyzer,
        force_refresh: bool = False,
    ) -> dict[str, Any]:
        """Run the text-analysis service over a stored page's plain text.

        A stored analysis is reused unless ``force_refresh`` is set. A new
        analysis is written back to the page and the page's cache entries are
        invalidated.

        Args:
            external_id: Notion page ID.
            owner_id: Internal owner ID.
            analyzer: TextAnalyzer collaborator.
            force_refresh: Re-run the analysis even if one is stored.

        Returns:
            Dict with title, result, analyzed_at (ISO string) and cached flag.

        Raises:
            NotFoundError: If the page is not stored for this owner.
            ValueError: If the page has no plain text to analyze.
        """
        page = await self.store.find_page(external_id, owner_id)
        if page is None:
            raise NotFoundError(f"Page {external_id} not found for owner {owner_id}")
        if not page.plain_text:
            raise ValueError(f"No plain text content available for page {external_id}")

        if page.analysis_text and not force_refresh:
            logger.info(f"Using stored analysis for page {external_id}")
            return {
                "title": page.title,
                "result": page.analysis_text,
                "analyzed_at": page.analyzed_at.isoformat() if page.analyzed_at else None,
                "cached": True,
            }

        logger.info(
            f"Analyzing page \"{page.title}\" ({len(page.plain_text)} characters)"
        )
        prompt = create_default_system_prompt(
            title=page.title, objective=REVIEW_OBJECTIVE, response_format=REVIEW_FORMAT
        )
        result = await analyzer.analyze(page.plain_text, prompt)

        now = self._clock()
        page.analysis_text = result
        page.analyzed_at = now
        page.updated_at = now
        try:
            await self.store.upsert_page(page)
        except StoreFailure as e:
            logger.error(f"Error storing analysis for page {external_id}: {e}")
        else:
            if self.cache is not None:
                await self.cache.invalidate_page(external_id, owner_id)
            logger.info(f"Stored analysis for page {external_id}")

        return {
            "title": page.title,
            "result": result,
            "analyzed_at": now.isoformat(),
            "cached": False,
        }
