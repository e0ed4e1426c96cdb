"""
Reader for the news snapshot written by the ingestion worker.

A missing or corrupt snapshot is treated as "no news yet", never as an error.
"""

import logging
import uuid
from pathlib import Path

from src.tradelog.news.schemas import NewsItemOut, NewsListResponse
from src.tradelog.storage import read_json

logger = logging.getLogger(__name__)


def empty_snapshot() -> dict:
    """The snapshot served when nothing usable is on disk."""
    return {"generated_at": None, "count": 0, "items": []}


def load_snapshot(path: Path) -> dict:
    """Load the raw snapshot document, substituting the empty snapshot on failure."""
    try:
        document = read_json(path)
    except FileNotFoundError:
        logger.debug(f"No news snapshot at {path}")
        return empty_snapshot()
    except (OSError, ValueError) as e:
        logger.warning(f"Unreadable news snapshot at {path}: {e}")
        return empty_snapshot()

    if not isinstance(document, dict):
        logger.warning(f"News snapshot at {path} is not an object")
        return empty_snapshot()
    return document


def _first(record: dict, *keys: str) -> str | None:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return str(value)
    return None


def normalize_item(record: dict) -> NewsItemOut:
    """
    Reshape a stored record into the client-facing schema.

    Accepts both the snake_case field names written by the worker and the
    older camelCase / short spellings.
    """
    coins = record.get("coins")
    return NewsItemOut(
        id=str(record.get("id") or uuid.uuid4().hex[:24]),
        title=_first(record, "title") or "",
        url=_first(record, "url") or "",
        source=_first(record, "source") or "",
        source_name=_first(record, "source_name") or "",
        image=_first(record, "image_url", "image"),
        coins=[str(c) for c in coins] if isinstance(coins, list) else [],
        publishedAt=_first(record, "published_at", "publishedAt"),
        excerpt=_first(record, "excerpt") or "",
    )


def normalize_snapshot(document: dict) -> NewsListResponse:
    """Build the API response from a raw snapshot document."""
    raw_items = document.get("items")
    if not isinstance(raw_items, list):
        raw_items = []

    items = [normalize_item(record) for record in raw_items if isinstance(record, dict)]
    return NewsListResponse(
        at=_first(document, "generated_at"),
        count=len(items),
        items=items,
    )


def read_news(path: Path) -> NewsListResponse:
    """Load and normalize the snapshot at path."""
    return normalize_snapshot(load_snapshot(path))
