"""Block tree fetching for Notion ingestion.

Pulls a page's block hierarchy level by level: every block at one depth is
listed (in concurrent batches) before any block at the next depth, and the
nested tree is rebuilt afterwards from the recorded parent -> children map.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from notion_ingest.errors import PartialFetchFailure
from notion_ingest.extract import extract_block_content
from notion_ingest.models import Block

if TYPE_CHECKING:
    from notion_ingest.client import AsyncNotionClient

logger = logging.getLogger(__name__)

# Levels of blocks fetched below the page root
MAX_DEPTH = 3

# Children-listing calls issued concurrently per batch
BATCH_SIZE = 10

# Pause between batches once a level needs more than BATCH_DELAY_THRESHOLD batches
BATCH_DELAY = 0.1
BATCH_DELAY_THRESHOLD = 3

PAGE_SIZE = 100


class BlockTreeFetcher:
    """Breadth-first, depth-bounded fetcher for a Notion block tree.

    The page root sits at depth 0 and its direct children at depth 1. The
    root is always listed; any other block is listed only if Notion reports
    children for it and it lies above ``max_depth``, so blocks at depth
    ``max_depth`` come back as leaves with an empty ``children`` list.

    A failed listing below the root is logged, recorded in ``failures`` and
    treated as "no children"; siblings are unaffected. A failed root listing
    propagates to the caller.

    Attributes:
        failures: PartialFetchFailure for each subtree skipped in the last run.
        request_count: Children-listing calls issued in the last run.
    """

    def __init__(
        self,
        client: "AsyncNotionClient",
        max_depth: int = MAX_DEPTH,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY,
        page_size: int = PAGE_SIZE,
    ):
        if max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {max_depth}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.client = client
        self.max_depth = max_depth
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.page_size = page_size
        self.failures: list[PartialFetchFailure] = []
        self.request_count = 0

    async def _list_children(self, block_id: str, depth: int) -> list[dict[str, Any]]:
        self.request_count += 1
        if depth == 0:
            return await self.client.list_children(block_id, page_size=self.page_size)
        try:
            return await self.client.list_children(block_id, page_size=self.page_size)
        except Exception as e:
            failure = PartialFetchFailure(block_id, depth, e)
            logger.warning(str(failure))
            self.failures.append(failure)
            return []

    async def fetch(self, root_id: str) -> list[Block]:
        """Fetch the block tree below ``root_id``.

        Args:
            root_id: Notion page (or block) ID whose subtree to fetch.

        Returns:
            The root's direct children, with nested children populated.

        Raises:
            NotFoundError, UpstreamFailure: If listing the root itself fails.
        """
        self.failures = []
        self.request_count = 0

        blocks_by_id: dict[str, Block] = {}
        children_by_parent: dict[str, list[str]] = {}

        frontier = [root_id]
        depth = 0

        while frontier:
            batches = [
                frontier[i:i + self.batch_size]
                for i in range(0, len(frontier), self.batch_size)
            ]
            next_frontier: list[str] = []

            for batch_num, batch in enumerate(batches, start=1):
                logger.debug(
                    f"Depth {depth}: listing batch {batch_num}/{len(batches)} "
                    f"({len(batch)} blocks)"
                )
                results = await asyncio.gather(
                    *(self._list_children(block_id, depth) for block_id in batch)
                )

                for parent_id, children in zip(batch, results):
                    child_ids = []
                    for raw in children:
                        block_id = raw.get("id") if isinstance(raw, dict) else None
                        block_type, content = extract_block_content(raw)
                        # Partial objects without id or type carry nothing to render
                        if not block_id or not block_type:
                            continue

                        has_children = bool(raw.get("has_children", False))
                        blocks_by_id[block_id] = Block(
                            id=block_id,
                            type=block_type,
                            content=content,
                            children=[] if has_children else None,
                        )
                        child_ids.append(block_id)

                        if has_children and depth + 1 < self.max_depth:
                            next_frontier.append(block_id)

                    children_by_parent[parent_id] = child_ids

                if len(batches) > BATCH_DELAY_THRESHOLD and batch_num < len(batches):
                    await asyncio.sleep(self.batch_delay)

            frontier = next_frontier
            depth += 1

        # Rebuild top-down from the recorded lists; completion order is irrelevant
        for parent_id, child_ids in children_by_parent.items():
            if parent_id in blocks_by_id:
                blocks_by_id[parent_id].children = [blocks_by_id[c] for c in child_ids]

        tree = [blocks_by_id[c] for c in children_by_parent.get(root_id, [])]

        logger.info(
            f"Fetched {len(blocks_by_id)} total blocks (including nested) for {root_id} "
            f"in {self.request_count} requests"
            + (f", {len(self.failures)} subtrees failed" if self.failures else "")
        )
        return tree


async def fetch_block_tree(
    client: "AsyncNotionClient",
    page_id: str,
    max_depth: int = MAX_DEPTH,
    batch_size: int = BATCH_SIZE,
) -> list[Block]:
    """Fetch a page's normalized block tree.

    Convenience wrapper around BlockTreeFetcher for callers that do not
    need the per-run failure list.

    Args:
        client: AsyncNotionClient instance.
        page_id: Notion page ID.
        max_depth: Levels of blocks to fetch below the page.
        batch_size: Concurrent children-listing calls per batch.

    Returns:
        List of root-level Blocks with nested children populated.
    """
    fetcher = BlockTreeFetcher(client, max_depth=max_depth, batch_size=batch_size)
    return await fetcher.fetch(page_id)
