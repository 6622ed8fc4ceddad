"""Database storage for feed_aggregator.

This module provides async SQLite database operations for feed sources,
articles and tombstones (links the user deleted and never wants back).
Database location: ~/.feed_aggregator/feed_aggregator.db (or FEED_AGGREGATOR_DB_PATH env var)
"""

import asyncio
import weakref
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

import aiosqlite

from feed_aggregator.config import get_config
from feed_aggregator.models.schemas import Article, FeedSource, FilterOption
from feed_aggregator.services.normalizer import parse_date, to_utc


def _get_db_path() -> Path:
    """Get the database path from config (FEED_AGGREGATOR_DB_PATH env var overrides it)."""
    db_path = get_config().db_path
    if db_path:
        return Path(db_path).expanduser()
    return Path.home() / ".feed_aggregator" / "feed_aggregator.db"


# Singleton connection
_db_connection: Optional[aiosqlite.Connection] = None

# Serializes multi-statement write transactions on the shared connection,
# one lock per event loop
_write_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def _write_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _write_locks.get(loop)
    if lock is None:
        lock = _write_locks[loop] = asyncio.Lock()
    return lock


async def get_database() -> aiosqlite.Connection:
    """Get or create a singleton database connection.

    Returns:
        Active database connection
    """
    global _db_connection

    if _db_connection is None:
        db_path = _get_db_path()
        # Ensure directory exists
        db_path.parent.mkdir(parents=True, exist_ok=True)

        _db_connection = await aiosqlite.connect(db_path)
        _db_connection.row_factory = aiosqlite.Row
        await init_database(_db_connection)

    return _db_connection


async def init_database(db: Optional[aiosqlite.Connection] = None) -> None:
    """Initialize database tables if they don't exist.

    Args:
        db: Optional database connection (uses singleton if not provided)
    """
    if db is None:
        db = await get_database()

    await db.execute("""
        CREATE TABLE IF NOT EXISTS feed_sources (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            url TEXT NOT NULL UNIQUE,
            last_updated TIMESTAMP
        )
    """)

    # link is not UNIQUE: the merge step keeps it unique among live articles
    await db.execute("""
        CREATE TABLE IF NOT EXISTS articles (
            id INTEGER PRIMARY KEY,
            title TEXT NOT NULL,
            link TEXT NOT NULL,
            pub_date TEXT NOT NULL,
            published_at TIMESTAMP,
            source_name TEXT NOT NULL,
            source_url TEXT NOT NULL,
            is_read BOOLEAN DEFAULT FALSE,
            description TEXT,
            image_url TEXT,
            discovered_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS deleted_articles (
            id INTEGER PRIMARY KEY,
            link TEXT NOT NULL UNIQUE,
            deleted_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_articles_link ON articles(link)
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_articles_source_url ON articles(source_url)
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_articles_is_read ON articles(is_read)
    """)

    await db.commit()


def _row_to_feed_source(row: aiosqlite.Row) -> FeedSource:
    return FeedSource(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        last_updated=datetime.fromisoformat(row["last_updated"])
        if row["last_updated"]
        else None,
    )


def _row_to_article(row: aiosqlite.Row) -> Article:
    return Article(
        id=row["id"],
        title=row["title"],
        link=row["link"],
        pub_date=row["pub_date"],
        source_name=row["source_name"],
        source_url=row["source_url"],
        is_read=bool(row["is_read"]),
        description=row["description"],
        image_url=row["image_url"],
        discovered_date=datetime.fromisoformat(row["discovered_date"])
        if row["discovered_date"]
        else None,
    )


def _placeholders(values: List) -> str:
    return ",".join("?" * len(values))


async def _tombstone_links(db: aiosqlite.Connection, links: Iterable[str]) -> None:
    """Record links as deleted and drop every live article carrying them.

    Does not commit.
    """
    links = list(set(links))
    if not links:
        return

    await db.executemany(
        "INSERT OR IGNORE INTO deleted_articles (link) VALUES (?)",
        [(link,) for link in links],
    )
    await db.execute(
        f"DELETE FROM articles WHERE link IN ({_placeholders(links)})",
        links,
    )


# ---------------------------------------------------------------------------
# Feed sources
# ---------------------------------------------------------------------------


async def add_feed_source(name: str, url: str) -> FeedSource:
    """Add a new feed source.

    Args:
        name: Unique display name
        url: Subscription URL of the RSS/Atom feed

    Returns:
        The created FeedSource

    Raises:
        ValueError: If a source with the same name or URL already exists
    """
    db = await get_database()

    async with _write_lock():
        try:
            cursor = await db.execute(
                "INSERT INTO feed_sources (name, url) VALUES (?, ?)",
                (name, url),
            )
            await db.commit()
        except aiosqlite.IntegrityError as e:
            raise ValueError(f"Feed with name '{name}' or URL '{url}' already exists") from e

    return FeedSource(id=cursor.lastrowid, name=name, url=url, last_updated=None)


async def update_feed_source(
    name: str,
    new_name: Optional[str] = None,
    new_url: Optional[str] = None,
) -> Optional[FeedSource]:
    """Rename a feed source and/or change its URL.

    Articles already stored carry the source name and URL for display; they
    are updated to match.

    Args:
        name: Current name of the source
        new_name: Optional new display name
        new_url: Optional new subscription URL

    Returns:
        Updated FeedSource, or None if no source has that name

    Raises:
        ValueError: If the new name or URL is taken by another source
    """
    source = await get_feed_source_by_name(name)
    if source is None:
        return None

    updated_name = new_name or source.name
    updated_url = new_url or source.url
    db = await get_database()

    async with _write_lock():
        try:
            await db.execute(
                "UPDATE feed_sources SET name = ?, url = ? WHERE id = ?",
                (updated_name, updated_url, source.id),
            )
            await db.execute(
                """
                UPDATE articles SET source_name = ?, source_url = ?
                WHERE source_name = ? AND source_url = ?
                """,
                (updated_name, updated_url, source.name, source.url),
            )
            await db.commit()
        except aiosqlite.IntegrityError as e:
            await db.rollback()
            raise ValueError(
                f"Feed with name '{updated_name}' or URL '{updated_url}' already exists"
            ) from e

    source.name = updated_name
    source.url = updated_url
    return source


async def remove_feed_source(name: str) -> Tuple[bool, int]:
    """Remove a feed source, deleting and tombstoning all its articles.

    Args:
        name: Name of the source to remove

    Returns:
        Tuple of (success, article_count_deleted)
    """
    source = await get_feed_source_by_name(name)
    if source is None:
        return (False, 0)

    db = await get_database()

    async with _write_lock():
        cursor = await db.execute(
            "SELECT link FROM articles WHERE source_url = ?",
            (source.url,),
        )
        links = [row["link"] async for row in cursor]

        await _tombstone_links(db, links)
        await db.execute("DELETE FROM feed_sources WHERE id = ?", (source.id,))
        await db.commit()

    return (True, len(links))


async def get_feed_source_by_name(name: str) -> Optional[FeedSource]:
    """Get a feed source by its name.

    Args:
        name: Name of the source

    Returns:
        FeedSource if found, None otherwise
    """
    db = await get_database()

    cursor = await db.execute("SELECT * FROM feed_sources WHERE name = ?", (name,))
    row = await cursor.fetchone()

    if row is None:
        return None

    return _row_to_feed_source(row)


async def get_feed_sources() -> List[FeedSource]:
    """Get all feed sources ordered by name."""
    db = await get_database()

    cursor = await db.execute("SELECT * FROM feed_sources ORDER BY name")
    return [_row_to_feed_source(row) async for row in cursor]


async def list_feed_sources() -> List[dict]:
    """List all feed sources with article counts.

    Returns:
        List of dicts with source info and article counts
    """
    db = await get_database()

    cursor = await db.execute("""
        SELECT s.*,
               COUNT(a.id) as total_articles,
               SUM(CASE WHEN a.is_read = 0 THEN 1 ELSE 0 END) as unread_articles
        FROM feed_sources s
        LEFT JOIN articles a ON s.url = a.source_url
        GROUP BY s.id
        ORDER BY s.name
    """)

    sources = []
    async for row in cursor:
        sources.append({
            "id": row["id"],
            "name": row["name"],
            "url": row["url"],
            "last_updated": row["last_updated"],
            "total_articles": row["total_articles"],
            "unread_articles": row["unread_articles"] or 0,
        })

    return sources


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


async def get_existing_links(links: List[str]) -> Set[str]:
    """Get the links that already belong to a stored article.

    Args:
        links: Links to check

    Returns:
        Set of links that already exist
    """
    if not links:
        return set()

    db = await get_database()

    cursor = await db.execute(
        f"SELECT DISTINCT link FROM articles WHERE link IN ({_placeholders(links)})",
        links,
    )
    return {row["link"] async for row in cursor}


async def get_tombstoned_links(links: List[str]) -> Set[str]:
    """Get the links the user has deleted.

    Args:
        links: Links to check

    Returns:
        Set of links present in the tombstone table
    """
    if not links:
        return set()

    db = await get_database()

    cursor = await db.execute(
        f"SELECT link FROM deleted_articles WHERE link IN ({_placeholders(links)})",
        links,
    )
    return {row["link"] async for row in cursor}


async def save_new_articles(source: FeedSource, articles: List[Article]) -> List[Article]:
    """Insert articles, stamp the source's last refresh and commit.

    Everything happens in one transaction; on failure it is rolled back and
    the error re-raised.

    Args:
        source: Source the articles were fetched from
        articles: Articles to insert (ids are assigned here)

    Returns:
        The inserted articles
    """
    db = await get_database()
    # Stored as naive UTC, like published_at, so the two sort together
    now = datetime.now(timezone.utc).replace(tzinfo=None)

    async with _write_lock():
        try:
            for article in articles:
                published_at = parse_date(article.pub_date)
                if published_at is not None:
                    published_at = to_utc(published_at)
                cursor = await db.execute(
                    """
                    INSERT INTO articles (
                        title, link, pub_date, published_at, source_name,
                        source_url, is_read, description, image_url, discovered_date
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        article.title,
                        article.link,
                        article.pub_date,
                        published_at.isoformat() if published_at else None,
                        article.source_name,
                        article.source_url,
                        article.is_read,
                        article.description,
                        article.image_url,
                        now.isoformat(),
                    ),
                )
                article.id = cursor.lastrowid
                article.discovered_date = now

            await db.execute(
                "UPDATE feed_sources SET last_updated = ? WHERE id = ?",
                (now.isoformat(), source.id),
            )
            await db.commit()
        except aiosqlite.Error:
            await db.rollback()
            for article in articles:
                article.id = None
            raise

    source.last_updated = now
    return articles


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------


def _article_filters(
    source_name: Optional[str],
    filter_option: FilterOption,
) -> Tuple[str, List]:
    clause = " WHERE 1=1"
    params: List = []

    if source_name:
        clause += " AND source_name = ?"
        params.append(source_name)

    if filter_option == FilterOption.UNREAD:
        clause += " AND is_read = 0"
    elif filter_option == FilterOption.READ:
        clause += " AND is_read = 1"

    return clause, params


async def get_article(article_id: int) -> Optional[Article]:
    """Get an article by id."""
    db = await get_database()

    cursor = await db.execute("SELECT * FROM articles WHERE id = ?", (article_id,))
    row = await cursor.fetchone()

    if row is None:
        return None

    return _row_to_article(row)


async def list_articles(
    source_name: Optional[str] = None,
    filter_option: FilterOption = FilterOption.ALL,
    limit: int = 50,
    offset: int = 0,
) -> List[Article]:
    """List articles, newest first.

    Ordering uses the parsed publication date when available, falling back
    to the discovery date.

    Args:
        source_name: Optional feed source name to filter by
        filter_option: Read-state filter
        limit: Maximum number of articles to return
        offset: Number of articles to skip

    Returns:
        List of Article objects
    """
    db = await get_database()

    where, params = _article_filters(source_name, filter_option)
    query = (
        "SELECT * FROM articles"
        + where
        + " ORDER BY COALESCE(published_at, discovered_date) DESC, id DESC LIMIT ? OFFSET ?"
    )
    params.extend([limit, offset])

    cursor = await db.execute(query, params)
    return [_row_to_article(row) async for row in cursor]


async def count_articles(
    source_name: Optional[str] = None,
    filter_option: FilterOption = FilterOption.ALL,
) -> int:
    """Count articles matching the same filters as list_articles."""
    db = await get_database()

    where, params = _article_filters(source_name, filter_option)
    cursor = await db.execute("SELECT COUNT(*) as count FROM articles" + where, params)
    row = await cursor.fetchone()
    return row["count"]


async def _set_read(article_id: int, is_read: Optional[bool]) -> Optional[Article]:
    db = await get_database()

    async with _write_lock():
        if is_read is None:
            await db.execute(
                "UPDATE articles SET is_read = NOT is_read WHERE id = ?",
                (article_id,),
            )
        else:
            await db.execute(
                "UPDATE articles SET is_read = ? WHERE id = ?",
                (is_read, article_id),
            )
        await db.commit()

    return await get_article(article_id)


async def mark_article_read(article_id: int) -> Optional[Article]:
    """Mark an article as read.

    Args:
        article_id: ID of the article

    Returns:
        Updated Article object if found, None otherwise
    """
    return await _set_read(article_id, True)


async def mark_article_unread(article_id: int) -> Optional[Article]:
    """Mark an article as unread.

    Args:
        article_id: ID of the article

    Returns:
        Updated Article object if found, None otherwise
    """
    return await _set_read(article_id, False)


async def toggle_article_read(article_id: int) -> Optional[Article]:
    """Flip the read state of an article."""
    return await _set_read(article_id, None)


async def mark_all_read(source_name: Optional[str] = None) -> int:
    """Mark all articles as read, optionally filtered by feed source.

    Args:
        source_name: Optional source name to filter by

    Returns:
        Number of articles marked as read
    """
    db = await get_database()

    async with _write_lock():
        if source_name:
            cursor = await db.execute(
                "UPDATE articles SET is_read = 1 WHERE source_name = ? AND is_read = 0",
                (source_name,),
            )
        else:
            cursor = await db.execute(
                "UPDATE articles SET is_read = 1 WHERE is_read = 0"
            )

        await db.commit()
    return cursor.rowcount


async def delete_article(article_id: int) -> Optional[Article]:
    """Delete an article and tombstone its link.

    Args:
        article_id: ID of the article

    Returns:
        The deleted Article, or None if it did not exist
    """
    article = await get_article(article_id)
    if article is None:
        return None

    db = await get_database()
    async with _write_lock():
        await _tombstone_links(db, [article.link])
        await db.commit()

    return article


async def clean_read_articles(source_name: Optional[str] = None) -> int:
    """Delete all read articles and tombstone their links.

    Args:
        source_name: Optional source name to restrict the clean to

    Returns:
        Number of links tombstoned
    """
    db = await get_database()

    where, params = _article_filters(source_name, FilterOption.READ)

    async with _write_lock():
        cursor = await db.execute("SELECT DISTINCT link FROM articles" + where, params)
        links = [row["link"] async for row in cursor]

        await _tombstone_links(db, links)
        await db.commit()

    return len(links)


async def clean_old_articles(
    days: int = 30,
    source_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """Delete articles published more than ``days`` ago and tombstone their links.

    Articles whose date could not be parsed are kept.

    Args:
        days: Age limit in days
        source_name: Optional source name to restrict the clean to
        now: Reference moment (naive UTC); defaults to the current time

    Returns:
        Number of links tombstoned
    """
    if now is None:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
    cutoff = (now - timedelta(days=days)).isoformat()

    db = await get_database()

    where, params = _article_filters(source_name, FilterOption.ALL)
    where += " AND published_at IS NOT NULL AND published_at < ?"
    params.append(cutoff)

    async with _write_lock():
        cursor = await db.execute("SELECT DISTINCT link FROM articles" + where, params)
        links = [row["link"] async for row in cursor]

        await _tombstone_links(db, links)
        await db.commit()

    return len(links)


async def clean_all_articles(source_name: Optional[str] = None) -> int:
    """Delete every article and tombstone its link.

    Args:
        source_name: Optional source name to restrict the clean to

    Returns:
        Number of links tombstoned
    """
    db = await get_database()

    where, params = _article_filters(source_name, FilterOption.ALL)

    async with _write_lock():
        cursor = await db.execute("SELECT DISTINCT link FROM articles" + where, params)
        links = [row["link"] async for row in cursor]

        await _tombstone_links(db, links)
        await db.commit()

    return len(links)


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection

    if _db_connection is not None:
        await _db_connection.close()
        _db_connection = None
