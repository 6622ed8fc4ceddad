"""Dedup merger.

Reconciles freshly parsed articles against the articles already stored and
against the tombstones of links the user deleted, and persists only what is
genuinely new.
"""

import asyncio
import weakref
from typing import Dict, List

import aiosqlite

from feed_aggregator.log_system.unified_logger import UnifiedLogger
from feed_aggregator.models.schemas import Article, FeedSource
from feed_aggregator.storage import database


# One lock per (event loop, source id); merges of different sources may interleave
_merge_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[int, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _source_lock(source: FeedSource) -> asyncio.Lock:
    locks = _merge_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(source.id)
    if lock is None:
        lock = locks[source.id] = asyncio.Lock()
    return lock


def select_new_articles(
    candidates: List[Article],
    existing_links: set,
    deleted_links: set,
) -> List[Article]:
    """Keep candidates whose link is neither stored nor tombstoned.

    Duplicate links inside ``candidates`` are not collapsed.
    """
    return [
        article
        for article in candidates
        if article.link not in existing_links and article.link not in deleted_links
    ]


async def merge_articles(source: FeedSource, candidates: List[Article]) -> List[Article]:
    """Persist the new articles of one fetched batch.

    Args:
        source: Source the batch was fetched from
        candidates: Normalized articles from the feed

    Returns:
        The articles that were inserted (empty if none, or if the commit failed)
    """
    logger = UnifiedLogger.get_logger(__name__)

    async with _source_lock(source):
        links = list({article.link for article in candidates})
        existing_links = await database.get_existing_links(links)
        deleted_links = await database.get_tombstoned_links(links)

        new_articles = select_new_articles(candidates, existing_links, deleted_links)

        try:
            await database.save_new_articles(source, new_articles)
        except aiosqlite.Error as e:
            logger.error(f"Error saving items for {source.name}: {e}")
            return []

    logger.info(
        f"Added {len(new_articles)} new items from {source.name} "
        f"({len(existing_links)} existing, {len(deleted_links)} deleted)"
    )
    return new_articles
