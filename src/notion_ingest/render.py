"""Plain-text rendering of normalized block trees.

Turns a page's metadata and Block tree into one linear document, the input
handed to the text-analysis service. Rendering is a pure function: list and
numbering state travel through the recursion as arguments, so the same input
always renders to the same text.
"""

from datetime import datetime
from typing import Sequence

from notion_ingest.extract import is_unsupported_content
from notion_ingest.models import Block, Page

DEFAULT_TITLE = "Notion Document"
NO_BLOCKS_TEXT = "No content blocks available."
TABLE_PLACEHOLDER = "[Table: Information organized in tabular format]"
IMAGE_PLACEHOLDER = "[Image: A visual representation related to {subject}]"
INDENT = "  "

HEADING_PREFIXES = {
    "heading_1": "#",
    "heading_2": "##",
    "heading_3": "###",
}


def _placeholder(block: Block) -> str:
    if block.type == "table":
        return TABLE_PLACEHOLDER
    return IMAGE_PLACEHOLDER.format(subject=block.content.strip() or "the topic")


def _is_rendered(block: Block) -> bool:
    """Whether a block takes part in rendering (and in list-run detection)."""
    if block.type in ("table", "image"):
        return True
    if not block.content and not block.children:
        return False
    return not is_unsupported_content(block.content)


def blocks_to_plain_text(
    blocks: Sequence[Block] | None,
    indent_level: int = 0,
    numbering: Sequence[int] = (),
) -> str:
    """Render a sequence of sibling blocks (and their children) as plain text.

    Args:
        blocks: Sibling blocks in document order.
        indent_level: Nesting level; each level indents by two spaces.
        numbering: Per-level counters of the enclosing numbered lists. Copied,
            never mutated, so nested lists count independently.

    Returns:
        The rendered text for these blocks.
    """
    if not blocks:
        return ""

    counters = list(numbering)
    if len(counters) <= indent_level:
        counters.extend([0] * (indent_level + 1 - len(counters)))

    indent = INDENT * indent_level
    top_level = indent_level == 0
    parts: list[str] = []

    # Skipped blocks neither start nor end a list run
    visible = [block for block in blocks if _is_rendered(block)]

    for i, block in enumerate(visible):
        prev_type = visible[i - 1].type if i > 0 else None
        next_type = visible[i + 1].type if i + 1 < len(visible) else None
        content = block.content or ""

        if block.type in ("table", "image"):
            parts.append(f"{indent}{_placeholder(block)}\n\n")
            continue

        if block.type in HEADING_PREFIXES:
            parts.append(f"{indent}{HEADING_PREFIXES[block.type]} {content}\n\n")

        elif block.type == "paragraph":
            if content.strip():
                parts.append(f"{indent}{content}\n\n")

        elif block.type in ("bulleted_list_item", "numbered_list_item"):
            starts_run = prev_type != block.type
            if starts_run and top_level:
                parts.append("\n")

            if block.type == "numbered_list_item":
                counters[indent_level] = 1 if starts_run else counters[indent_level] + 1
                parts.append(f"{indent}{counters[indent_level]}. {content}\n")
            else:
                parts.append(f"{indent}- {content}\n")

            if block.children:
                parts.append(blocks_to_plain_text(block.children, indent_level + 1, counters))

            if top_level and next_type is not None and next_type != block.type:
                parts.append("\n")

        elif block.type == "toggle":
            parts.append(f"{indent}▶ {content}\n")
            if block.children:
                parts.append(blocks_to_plain_text(block.children, indent_level + 1, counters))
            parts.append("\n")

        elif content.strip():
            parts.append(f"{indent}{content}\n\n")

    return "".join(parts)


def format_display_date(value: str | None) -> str | None:
    """Reduce an ISO date or timestamp to YYYY-MM-DD; other strings pass through."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


def assemble_document(
    blocks: Sequence[Block] | None,
    title: str | None = None,
    description: str | None = None,
    author_name: str | None = None,
    date: str | None = None,
) -> str:
    """Assemble the full plain-text document for a page.

    Layout: "# <title>", the description, an "Author: ... | Date: ..." line
    followed by a "---" separator (only when author or date is known), then
    the rendered blocks, or NO_BLOCKS_TEXT when there are none.

    Args:
        blocks: Root-level blocks of the page.
        title: Page title; DEFAULT_TITLE when missing.
        description: Optional description paragraph.
        author_name: Optional author display name.
        date: Optional display date.

    Returns:
        The complete document text.
    """
    parts = [f"# {title or DEFAULT_TITLE}\n\n"]

    if description:
        parts.append(f"{description}\n\n")

    metadata = []
    if author_name:
        metadata.append(f"Author: {author_name}")
    if date:
        metadata.append(f"Date: {date}")
    if metadata:
        parts.append(" | ".join(metadata) + "\n\n")
        parts.append("---\n\n")

    if blocks:
        parts.append(blocks_to_plain_text(blocks))
    else:
        parts.append(NO_BLOCKS_TEXT)

    return "".join(parts)


def render_page(page: Page) -> str:
    """Render a Page's metadata and blocks into its plain-text document."""
    return assemble_document(
        page.blocks,
        title=page.title,
        description=page.description,
        author_name=page.author.name if page.author else None,
        date=format_display_date(page.created_date),
    )
