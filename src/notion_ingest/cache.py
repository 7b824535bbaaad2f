"""Page caching: cache backends and the read-through consistency layer.

PageCacheLayer serves page lists and page details from the cache when it
can, falls back to the PageStore on a miss, and exposes the invalidation
calls every mutation path must await before reporting success. Cache
problems never fail a request: they are logged and treated as a miss.
"""

import json
import logging
import math
import re
import time
from typing import TYPE_CHECKING, Any, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from notion_ingest.errors import CacheFailure, NotFoundError, StoreFailure
from notion_ingest.models import Page
from notion_ingest.render import render_page
from notion_ingest.utils import get_redis_url

if TYPE_CHECKING:
    from notion_ingest.store import PageStore

logger = logging.getLogger(__name__)

PAGE_LIST_PREFIX = "notion_pages"
PAGE_DETAIL_PREFIX = "notion_page_detail"

PAGE_LIST_TTL = 3600  # 1 hour
PAGE_DETAIL_TTL = 86400  # 24 hours

SCAN_COUNT = 100

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def page_list_key(owner_id: str, prefix: str = PAGE_LIST_PREFIX) -> str:
    return f"{prefix}:{owner_id}"


def page_detail_key(external_id: str, prefix: str = PAGE_DETAIL_PREFIX) -> str:
    return f"{prefix}:{external_id}"


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so ``text`` matches only itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


def format_hit_rate(hits: int, misses: int) -> str:
    """Hit rate as a percentage string, "0%" when nothing was requested yet."""
    if hits == 0 and misses == 0:
        return "0%"
    return f"{hits / (hits + misses) * 100:.2f}%"


class CacheBackend(Protocol):
    """Key/value cache holding JSON-serializable values with a TTL.

    Backends may also offer ``async stats() -> dict`` with ``total_keys``,
    ``hits`` and ``misses``; PageCacheLayer.cache_stats uses it when present.
    """

    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def scan_by_prefix(self, prefix: str) -> list[str]:
        ...


class RedisCache:
    """CacheBackend on Redis: JSON strings stored with SET ... EX."""

    def __init__(self, client: redis.Redis):
        self.redis = client

    @classmethod
    def from_url(cls, url: str | None = None) -> "RedisCache":
        """Connect to Redis at ``url`` (default: REDIS_URL from the environment)."""
        client = redis.from_url(
            url or get_redis_url(),
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        return cls(client)

    async def close(self) -> None:
        await self.redis.aclose()

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            raise CacheFailure(f"Redis get failed for {key}: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CacheFailure(f"Corrupt cache entry for {key}: {e}") from e

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.redis.set(key, json.dumps(value), ex=ttl_seconds)
        except (RedisError, TypeError) as e:
            raise CacheFailure(f"Redis set failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            raise CacheFailure(f"Redis delete failed for {key}: {e}") from e

    async def scan_by_prefix(self, prefix: str) -> list[str]:
        pattern = f"{escape_glob(prefix)}*"
        try:
            return [key async for key in self.redis.scan_iter(match=pattern, count=SCAN_COUNT)]
        except RedisError as e:
            raise CacheFailure(f"Redis scan failed for prefix {prefix}: {e}") from e

    async def stats(self) -> dict[str, int]:
        """Server-wide key count and keyspace hits/misses (INFO stats)."""
        try:
            total_keys = await self.redis.dbsize()
            info = await self.redis.info("stats")
        except RedisError as e:
            raise CacheFailure(f"Redis stats failed: {e}") from e
        return {
            "total_keys": int(total_keys),
            "hits": int(info.get("keyspace_hits", 0)),
            "misses": int(info.get("keyspace_misses", 0)),
        }


class InMemoryCache:
    """CacheBackend in a dict, with monotonic-clock expiry.

    Values are stored as JSON text so reads hand out fresh copies, the same
    as a network cache would.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, str]] = {}
        self.hits = 0
        self.misses = 0

    def _live_keys(self) -> list[str]:
        now = time.monotonic()
        return [key for key, (expires_at, _) in self._entries.items() if now < expires_at]

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is not None and time.monotonic() >= entry[0]:
            del self._entries[key]
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return json.loads(entry[1])

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            raw = json.dumps(value)
        except TypeError as e:
            raise CacheFailure(f"Value for {key} is not JSON serializable: {e}") from e
        self._entries[key] = (time.monotonic() + ttl_seconds, raw)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def scan_by_prefix(self, prefix: str) -> list[str]:
        return [key for key in self._live_keys() if key.startswith(prefix)]

    async def stats(self) -> dict[str, int]:
        return {"total_keys": len(self._live_keys()), "hits": self.hits, "misses": self.misses}


class PageCacheLayer:
    """Read-through cache in front of a PageStore.

    Cached values are trusted until their TTL runs out or they are
    invalidated; there is no other staleness check. Every cache call is
    wrapped so that failures degrade to a miss (reads) or a no-op (writes).

    Attributes:
        cache: The CacheBackend in use.
        store: The authoritative PageStore.
    """

    def __init__(
        self,
        cache: CacheBackend,
        store: "PageStore",
        list_ttl: int = PAGE_LIST_TTL,
        detail_ttl: int = PAGE_DETAIL_TTL,
        list_prefix: str = PAGE_LIST_PREFIX,
        detail_prefix: str = PAGE_DETAIL_PREFIX,
    ):
        self.cache = cache
        self.store = store
        self.list_ttl = list_ttl
        self.detail_ttl = detail_ttl
        self.list_prefix = list_prefix
        self.detail_prefix = detail_prefix

    def list_key(self, owner_id: str) -> str:
        return page_list_key(owner_id, self.list_prefix)

    def detail_key(self, external_id: str) -> str:
        return page_detail_key(external_id, self.detail_prefix)

    # -------------------------------------------------------------------------
    # Guarded cache access
    # -------------------------------------------------------------------------

    async def _cache_get(self, key: str) -> Any | None:
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def _cache_set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.cache.set(key, value, ttl_seconds)
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")

    async def _cache_delete(self, key: str) -> bool:
        try:
            await self.cache.delete(key)
            return True
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_pages(self, owner_id: str, force_refresh: bool = False) -> list[dict[str, Any]]:
        """List an owner's pages in summary form (no blocks or text).

        Args:
            owner_id: Internal owner ID.
            force_refresh: Skip the cache read; the result is still cached.

        Returns:
            List of Page.summary() dicts, newest first.

        Raises:
            StoreFailure: If the store cannot be read on a miss.
        """
        key = self.list_key(owner_id)
        if not force_refresh:
            cached = await self._cache_get(key)
            if isinstance(cached, list):
                logger.debug(f"Returning {len(cached)} cached pages for owner {owner_id}")
                return cached

        try:
            pages = await self.store.list_pages(owner_id)
        except StoreFailure:
            raise
        except Exception as e:
            raise StoreFailure(f"Failed to list pages for owner {owner_id}: {e}") from e

        summaries = [page.summary() for page in pages]
        await self._cache_set(key, summaries, self.list_ttl)
        logger.debug(f"Cached {len(summaries)} pages for owner {owner_id}")
        return summaries

    async def get_page(self, external_id: str, owner_id: str, force_refresh: bool = False) -> Page:
        """Get one page with its blocks and plain text.

        Args:
            external_id: Notion page ID.
            owner_id: Internal owner ID; pages of other owners are not returned.
            force_refresh: Skip the cache read; the result is still cached.

        Returns:
            The Page.

        Raises:
            NotFoundError: If the page is neither cached nor stored for this owner.
            StoreFailure: If the store cannot be read on a miss.
        """
        key = self.detail_key(external_id)
        if not force_refresh:
            cached = await self._cache_get(key)
            if isinstance(cached, dict):
                try:
                    page = Page.from_dict(cached)
                except ValueError as e:
                    logger.error(f"Discarding unreadable cache entry {key}: {e}")
                else:
                    if page.owner_id == owner_id:
                        logger.debug(f"Returning cached page {external_id}")
                        return page

        try:
            page = await self.store.find_page(external_id, owner_id)
        except StoreFailure:
            raise
        except Exception as e:
            raise StoreFailure(f"Failed to read page {external_id}: {e}") from e

        if page is None:
            raise NotFoundError(f"Page {external_id} not found for owner {owner_id}")

        await self._cache_set(key, page.to_dict(), self.detail_ttl)
        logger.debug(f"Cached page {external_id} for {self.detail_ttl} seconds")
        return page

    async def get_plain_text(self, external_id: str, owner_id: str) -> dict[str, Any]:
        """Get a page's plain-text document with size statistics.

        Falls back to rendering the stored blocks when the page has no
        stored plain text yet.

        Returns:
            Dict with page_id, title, plain_text and stats (characters,
            words, approximate_tokens).

        Raises:
            NotFoundError: If the page does not exist for this owner.
        """
        page = await self.get_page(external_id, owner_id)
        text = page.plain_text or render_page(page)
        return {
            "page_id": page.external_id,
            "title": page.title or "Untitled",
            "plain_text": text,
            "stats": {
                "characters": len(text),
                "words": len(text.split()),
                "approximate_tokens": math.ceil(len(text) / 4),
            },
        }

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    async def invalidate_page(self, external_id: str, owner_id: str | None = None) -> None:
        """Drop the cached detail of a page, and the owner's list when given."""
        await self._cache_delete(self.detail_key(external_id))
        if owner_id is not None:
            await self.invalidate_owner(owner_id)
        logger.debug(f"Invalidated cache for page {external_id}")

    async def invalidate_owner(self, owner_id: str) -> None:
        """Drop the cached page list of an owner."""
        await self._cache_delete(self.list_key(owner_id))

    async def clear_by_prefix(self, prefix: str) -> int:
        """Delete every cached key starting with ``prefix``.

        Returns:
            Number of keys deleted.
        """
        try:
            keys = await self.cache.scan_by_prefix(prefix)
        except Exception as e:
            logger.error(f"Cache scan error for prefix {prefix}: {e}")
            return 0

        deleted = 0
        for key in keys:
            if await self._cache_delete(key):
                deleted += 1
        if deleted:
            logger.info(f"Deleted {deleted} keys with prefix {prefix}")
        return deleted

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    async def _scan(self, prefix: str) -> list[str]:
        try:
            return await self.cache.scan_by_prefix(prefix)
        except Exception as e:
            logger.error(f"Cache scan error for prefix {prefix}: {e}")
            return []

    async def cache_stats(self, owner_id: str) -> dict[str, Any]:
        """Report backend-wide numbers and the cache keys relevant to an owner.

        Detail keys are keyed by page only, so every cached page detail is
        counted. Errors degrade to None / "N/A" / empty values.

        Returns:
            Dict with ``overview`` (total_keys, hit_rate) and ``owner_cache``
            (total_keys, page_list_keys, page_detail_keys, keys).
        """
        overview: dict[str, Any] = {"total_keys": None, "hit_rate": "N/A"}
        stats = getattr(self.cache, "stats", None)
        if stats is not None:
            try:
                numbers = await stats()
            except Exception as e:
                logger.error(f"Cache stats error: {e}")
            else:
                overview = {
                    "total_keys": numbers["total_keys"],
                    "hit_rate": format_hit_rate(numbers["hits"], numbers["misses"]),
                }

        list_key = self.list_key(owner_id)
        list_keys = [key for key in await self._scan(list_key) if key == list_key]
        detail_keys = await self._scan(f"{self.detail_prefix}:")

        return {
            "overview": overview,
            "owner_cache": {
                "total_keys": len(list_keys) + len(detail_keys),
                "page_list_keys": len(list_keys),
                "page_detail_keys": len(detail_keys),
                "keys": list_keys + sorted(detail_keys),
            },
        }
