"""Page store and owner resolution contracts.

The relational store and the identity provider live outside this package;
ingestion talks to them through the protocols below. InMemoryPageStore and
InMemoryOwnerResolver implement them in-process for tests and local runs.
"""

import asyncio
import itertools
import logging
from typing import Protocol

from notion_ingest.errors import StoreFailure
from notion_ingest.models import Page

logger = logging.getLogger(__name__)


class PageStore(Protocol):
    """Persistence for synchronized pages, keyed by (external_id, owner_id)."""

    async def find_page(self, external_id: str, owner_id: str) -> Page | None:
        ...

    async def upsert_page(self, page: Page) -> None:
        """Insert the page, or replace every field of the existing row.

        Raises:
            StoreFailure: If the write is rejected.
        """
        ...

    async def delete_page(self, external_id: str, owner_id: str) -> bool:
        """Delete the page; returns whether a row was removed."""
        ...

    async def list_pages(self, owner_id: str) -> list[Page]:
        ...


class OwnerResolver(Protocol):
    """Maps an external identity (auth provider user id) to an internal owner id."""

    async def resolve_owner(self, external_identity: str) -> str | None:
        ...


class InMemoryPageStore:
    """PageStore kept in a dict, with the unique external_id constraint.

    Pages are copied on the way in and out so callers never share state
    with the store. ``list_pages`` returns the most recently created rows
    first.
    """

    def __init__(self) -> None:
        self._pages: dict[str, Page] = {}
        self._created: dict[str, int] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def find_page(self, external_id: str, owner_id: str) -> Page | None:
        page = self._pages.get(external_id)
        if page is None or page.owner_id != owner_id:
            return None
        return page.model_copy(deep=True)

    async def upsert_page(self, page: Page) -> None:
        async with self._lock:
            existing = self._pages.get(page.external_id)
            if existing is not None and existing.owner_id != page.owner_id:
                raise StoreFailure(
                    f"Page {page.external_id} already belongs to another owner"
                )
            if existing is None:
                self._created[page.external_id] = next(self._sequence)
                logger.debug(f"Inserted page {page.external_id}")
            else:
                logger.debug(f"Replaced page {page.external_id}")
            self._pages[page.external_id] = page.model_copy(deep=True)

    async def delete_page(self, external_id: str, owner_id: str) -> bool:
        async with self._lock:
            page = self._pages.get(external_id)
            if page is None or page.owner_id != owner_id:
                return False
            del self._pages[external_id]
            del self._created[external_id]
            return True

    async def list_pages(self, owner_id: str) -> list[Page]:
        owned = [p for p in self._pages.values() if p.owner_id == owner_id]
        owned.sort(key=lambda p: self._created[p.external_id], reverse=True)
        return [p.model_copy(deep=True) for p in owned]


class InMemoryOwnerResolver:
    """OwnerResolver backed by a fixed identity -> owner id mapping."""

    def __init__(self, owners: dict[str, str] | None = None):
        self._owners = dict(owners or {})

    def register(self, external_identity: str, owner_id: str) -> None:
        self._owners[external_identity] = owner_id

    async def resolve_owner(self, external_identity: str) -> str | None:
        owner_id = self._owners.get(external_identity)
        if owner_id is None:
            logger.warning(f"No owner registered for identity {external_identity}")
        return owner_id

    def owner_ids(self) -> list[str]:
        return sorted(set(self._owners.values()))
