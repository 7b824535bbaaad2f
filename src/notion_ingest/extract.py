"""Text extraction utilities for Notion blocks and page properties.

Provides the per-block content extractor used while fetching a block tree,
and the property readers used to pull page metadata (title, description,
author, date) out of a Notion page object.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Block types whose content is the concatenated rich_text of the block
TEXT_BLOCK_TYPES = frozenset([
    "paragraph",
    "heading_1",
    "heading_2",
    "heading_3",
    "bulleted_list_item",
    "numbered_list_item",
    "toggle",
])

# Recognized block types without inline text; the renderer substitutes
# a placeholder line for them
PLACEHOLDER_BLOCK_TYPES = frozenset(["table", "image"])

# Marker put in `content` for block types the extractor does not handle.
# The renderer drops blocks carrying it instead of printing it.
UNSUPPORTED_PREFIX = "Unsupported block type:"

# Candidate property names, consulted in order; first non-empty value wins.
# These encode assumptions about the database schema: a renamed property
# outside these lists is silently missed.
TITLE_PROPERTY_CANDIDATES = ("Pages", "Pages ", "Name", "Title")
DESCRIPTION_PROPERTY_CANDIDATES = (
    "Description",
    "description",
    "Summary",
    "summary",
    "Overview",
    "overview",
)
AUTHOR_PROPERTY_CANDIDATES = ("author", "Author")
DATE_PROPERTY_CANDIDATES = ("Date", "Created")


def extract_rich_text(rich_text: list[dict] | None) -> str:
    """Extract plain text from a Notion rich_text array.

    Works with both Notion API blocks (plain_text) and local blocks (text.content).

    Args:
        rich_text: List of rich_text objects from Notion API or local blocks.

    Returns:
        Concatenated plain text from all segments, with no separator.
    """
    if not rich_text:
        return ""
    texts = []
    for item in rich_text:
        if not isinstance(item, dict):
            continue
        # Notion API format: has plain_text
        if "plain_text" in item:
            texts.append(item["plain_text"] or "")
        # Local format: has text.content
        elif isinstance(item.get("text"), dict) and "content" in item["text"]:
            texts.append(item["text"]["content"] or "")
    return "".join(texts)


def unsupported_content(block_type: str) -> str:
    return f"{UNSUPPORTED_PREFIX} {block_type}"


def is_unsupported_content(content: str | None) -> bool:
    return bool(content) and content.startswith(UNSUPPORTED_PREFIX)


def extract_block_content(block: dict[str, Any]) -> tuple[str, str]:
    """Map one Notion block object to its ``(type, content)`` pair.

    - Text blocks (paragraph, heading_*, list items, toggle):
      content is the plain text of their rich_text runs, in order
    - Table and image: empty content (rendered as placeholders later)
    - Any other type: the "Unsupported block type: <type>" marker

    Never raises: missing or malformed fields default to empty strings.

    Args:
        block: Block dict from Notion API.

    Returns:
        Tuple of (block type, extracted content).
    """
    if not isinstance(block, dict):
        return "", ""

    block_type = block.get("type") or ""
    if not isinstance(block_type, str) or not block_type:
        return "", ""

    if block_type in TEXT_BLOCK_TYPES:
        block_data = block.get(block_type)
        if not isinstance(block_data, dict):
            return block_type, ""
        return block_type, extract_rich_text(block_data.get("rich_text"))

    if block_type in PLACEHOLDER_BLOCK_TYPES:
        return block_type, ""

    logger.debug(f"Unsupported block type for content extraction: {block_type}")
    return block_type, unsupported_content(block_type)


# =============================================================================
# PAGE PROPERTIES
# =============================================================================


def extract_property_value(prop: dict[str, Any] | None) -> Any:
    """Normalize a Notion page property to a plain Python value.

    - title, rich_text: concatenated plain text (None when empty)
    - people: list of {"id", "name", "avatar_url"} dicts
    - date: the start date string
    - select: option name; multi_select: first option name
    - anything else: the raw payload under the property's type key

    Args:
        prop: A single property object from page["properties"].

    Returns:
        The normalized value, or None when absent.
    """
    if not isinstance(prop, dict):
        return None

    prop_type = prop.get("type")

    if prop_type in ("title", "rich_text"):
        return extract_rich_text(prop.get(prop_type)) or None

    if prop_type == "people":
        return [
            {
                "id": person.get("id", ""),
                "name": person.get("name"),
                "avatar_url": person.get("avatar_url"),
            }
            for person in prop.get("people") or []
        ]

    if prop_type == "date":
        date = prop.get("date") or {}
        return date.get("start")

    if prop_type == "select":
        select = prop.get("select") or {}
        return select.get("name")

    if prop_type == "multi_select":
        options = prop.get("multi_select") or []
        return options[0].get("name") if options else None

    return prop.get(prop_type) if prop_type else None


def _first_candidate(properties: dict[str, Any], candidates: tuple[str, ...]) -> Any:
    for name in candidates:
        value = extract_property_value(properties.get(name))
        if value:
            return value
    return None


def extract_page_title(properties: dict[str, Any]) -> str | None:
    """Extract the page title from a Notion properties mapping.

    Tries TITLE_PROPERTY_CANDIDATES in order, then falls back to whichever
    property has type "title".

    Args:
        properties: page["properties"] from the Notion API.

    Returns:
        Plain text title, or None if no candidate yields text.
    """
    title = _first_candidate(properties, TITLE_PROPERTY_CANDIDATES)
    if isinstance(title, str):
        return title

    for prop_data in properties.values():
        if isinstance(prop_data, dict) and prop_data.get("type") == "title":
            text = extract_rich_text(prop_data.get("title"))
            if text:
                return text

    return None


def extract_page_metadata(page: dict[str, Any]) -> dict[str, Any]:
    """Pull display metadata out of a Notion page object.

    Args:
        page: Page object from the Notion API (from client.get_page()).

    Returns:
        Dict with keys title, description, author (dict or None),
        created_date, url and last_edited_time.
    """
    properties = page.get("properties") or {}

    description = _first_candidate(properties, DESCRIPTION_PROPERTY_CANDIDATES)
    if not isinstance(description, str):
        description = None

    author = None
    people = _first_candidate(properties, AUTHOR_PROPERTY_CANDIDATES)
    if isinstance(people, list) and people:
        author = people[0]

    created_date = _first_candidate(properties, DATE_PROPERTY_CANDIDATES)
    if not isinstance(created_date, str):
        created_date = None

    return {
        "title": extract_page_title(properties),
        "description": description,
        "author": author,
        "created_date": created_date,
        "url": page.get("url"),
        "last_edited_time": page.get("last_edited_time"),
    }
