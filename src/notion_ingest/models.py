"""Records produced by ingestion: normalized blocks and synchronized pages."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Block(BaseModel):
    """One normalized node of a page's content tree.

    ``children`` is None when Notion reported no children for the node, and
    a (possibly empty) list when it did. A node past the depth limit, or one
    whose children could not be fetched, keeps an empty list.
    """

    id: str
    type: str
    content: str = ""
    children: list["Block"] | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Author(BaseModel):
    id: str = ""
    name: str | None = None
    avatar_url: str | None = None


class Page(BaseModel):
    """A Notion page synchronized into the local store.

    Identity is ``(external_id, owner_id)``. ``plain_text`` is always derived
    from ``blocks`` plus metadata by notion_ingest.render and is replaced on
    every sync, like every other field.
    """

    external_id: str
    owner_id: str
    url: str | None = None
    title: str | None = None
    description: str | None = None
    author: Author | None = None
    created_date: str | None = None
    blocks: list[Block] = Field(default_factory=list)
    plain_text: str = ""
    analysis_text: str | None = None
    analyzed_at: datetime | None = None
    last_synced_at: datetime | None = None
    source_last_edited_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON-safe shape stored in the cache."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Page":
        return cls.model_validate(data)

    def summary(self) -> dict[str, Any]:
        """Return the list-view shape: metadata and sync info, no content."""
        return self.model_dump(
            mode="json",
            exclude_none=True,
            exclude={"blocks", "plain_text", "analysis_text"},
        )
