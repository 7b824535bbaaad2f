"""Exception hierarchy for Notion ingestion.

Every error raised on purpose by this package derives from NotionIngestError,
so callers can catch the whole family with a single except clause.
"""


class NotionIngestError(Exception):
    """Base exception for notion_ingest errors."""


class NotFoundError(NotionIngestError):
    """Raised when an owner, page or block does not exist."""


class UpstreamFailure(NotionIngestError):
    """Raised when the Notion API is unreachable, times out or keeps erroring."""


class PartialFetchFailure(NotionIngestError):
    """One subtree could not be listed while fetching a block tree.

    Not raised by the fetcher itself: instances are collected on
    BlockTreeFetcher.failures so callers can inspect what was skipped.

    Attributes:
        block_id: ID of the block whose children could not be listed.
        depth: Depth of that block below the page root.
    """

    def __init__(self, block_id: str, depth: int, cause: BaseException):
        super().__init__(f"Failed to fetch children for block {block_id}: {cause}")
        self.block_id = block_id
        self.depth = depth
        self.cause = cause


class StoreFailure(NotionIngestError):
    """Raised when the page store rejects an upsert, select or delete."""


class CacheFailure(NotionIngestError):
    """Raised by cache backends; always swallowed by the cache layer."""
