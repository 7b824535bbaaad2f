"""Notion Ingest Library - Pull Notion pages into a local store as block trees and plain text.

Module structure:
- client: Async, retrying Notion API wrapper
- fetch: Breadth-first, depth-bounded block tree fetching
- extract: Block content and page property extraction
- render: Plain-text rendering of block trees
- models: Block, Author and Page records
- store: Page store / owner resolver contracts and in-memory implementations
- cache: Cache backends and the read-through page cache layer
- sync: Page synchronization and other mutation paths
- errors: Exception hierarchy
- utils: Environment configuration
"""

# Client
from notion_ingest.client import get_notion_client, AsyncNotionClient

# Fetch operations
from notion_ingest.fetch import fetch_block_tree, BlockTreeFetcher

# Extract operations
from notion_ingest.extract import (
    extract_block_content,
    extract_rich_text,
    extract_property_value,
    extract_page_title,
    extract_page_metadata,
)

# Render operations
from notion_ingest.render import blocks_to_plain_text, assemble_document, render_page

# Records
from notion_ingest.models import Block, Author, Page

# Store
from notion_ingest.store import (
    PageStore,
    OwnerResolver,
    InMemoryPageStore,
    InMemoryOwnerResolver,
)

# Cache
from notion_ingest.cache import (
    CacheBackend,
    RedisCache,
    InMemoryCache,
    PageCacheLayer,
    page_list_key,
    page_detail_key,
)

# Sync
from notion_ingest.sync import PageSyncer, TextAnalyzer, create_default_system_prompt

# Errors
from notion_ingest.errors import (
    NotionIngestError,
    NotFoundError,
    UpstreamFailure,
    PartialFetchFailure,
    StoreFailure,
    CacheFailure,
)

# Utils
from notion_ingest.utils import get_notion_token, get_database_id, get_redis_url

__all__ = [
    # Client
    "get_notion_client",
    "AsyncNotionClient",
    # Fetch
    "fetch_block_tree",
    "BlockTreeFetcher",
    # Extract
    "extract_block_content",
    "extract_rich_text",
    "extract_property_value",
    "extract_page_title",
    "extract_page_metadata",
    # Render
    "blocks_to_plain_text",
    "assemble_document",
    "render_page",
    # Records
    "Block",
    "Author",
    "Page",
    # Store
    "PageStore",
    "OwnerResolver",
    "InMemoryPageStore",
    "InMemoryOwnerResolver",
    # Cache
    "CacheBackend",
    "RedisCache",
    "InMemoryCache",
    "PageCacheLayer",
    "page_list_key",
    "page_detail_key",
    # Sync
    "PageSyncer",
    "TextAnalyzer",
    "create_default_system_prompt",
    # Errors
    "NotionIngestError",
    "NotFoundError",
    "UpstreamFailure",
    "PartialFetchFailure",
    "StoreFailure",
    "CacheFailure",
    # Utils
    "get_notion_token",
    "get_database_id",
    "get_redis_url",
]
