"""Notion Ingest Utilities - Environment configuration helpers."""

import os
import logging
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379"

# Auto-load .env from project root
_env_loaded = False


def _ensure_env_loaded() -> None:
    """Load .env file if not already loaded."""
    global _env_loaded
    if _env_loaded:
        return

    # Find project root (look for .env going up from this file)
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        env_file = parent / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            logger.debug(f"Loaded environment from {env_file}")
            break

    _env_loaded = True


def get_notion_token() -> str:
    """Get Notion API token from environment.

    Automatically loads .env file from project root if present.

    Returns:
        The NOTION_API_TOKEN environment variable value.

    Raises:
        ValueError: If NOTION_API_TOKEN is not set.
    """
    _ensure_env_loaded()

    token = os.environ.get("NOTION_API_TOKEN")
    if not token:
        raise ValueError(
            "NOTION_API_TOKEN environment variable not set.\n"
            "Get your token at: https://www.notion.so/my-integrations"
        )
    return token


def get_database_id() -> str | None:
    """Get the ID of the Notion database that bulk sync reads from.

    Returns:
        The NOTION_DATABASE_ID value, or None when it is not configured.
    """
    _ensure_env_loaded()
    return os.environ.get("NOTION_DATABASE_ID") or None


def get_redis_url() -> str:
    """Get the Redis URL for the page cache (REDIS_URL, with a localhost default)."""
    _ensure_env_loaded()
    return os.environ.get("REDIS_URL") or DEFAULT_REDIS_URL
