"""Feed aggregator MCP tools.

This module provides MCP tools for managing feed subscriptions and articles.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
Use empty string "" for optional strings and 0 for optional integers.
"""

from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context

from feed_aggregator.log_system.unified_logger import UnifiedLogger
from feed_aggregator.models.schemas import Article, FeedSource, FilterOption, RefreshSummary
from feed_aggregator.services import scheduler
from feed_aggregator.services.refresh import RefreshOrchestrator, RefreshStatus
from feed_aggregator.storage import database
from feed_aggregator.utils.text import extract_domain, extract_domain_name, html_to_text, is_valid_url


PREVIEW_LENGTH = 280


def _notification_message(source_name: str, count: int) -> str:
    return f"{count} new article{'s' if count != 1 else ''} from {source_name}"


def _notify_new_articles(source: FeedSource, articles: List[Article]) -> None:
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(_notification_message(source.name, len(articles)))


# Shared by every tool call so refresh_status reflects refreshes in flight
orchestrator = RefreshOrchestrator(status=RefreshStatus(), notify=_notify_new_articles)


async def refresh_all_sources() -> RefreshSummary:
    """Refresh every subscribed feed. Also run by the periodic scheduler."""
    sources = await database.get_feed_sources()
    return await orchestrator.refresh_all(sources)


def _article_to_dict(article: Article) -> Dict[str, Any]:
    published_at = article.published_at
    return {
        "id": article.id,
        "title": article.title,
        "link": article.link,
        "pub_date": article.pub_date,
        "published_at": published_at.isoformat() if published_at else None,
        "source_name": article.source_name,
        "source_domain": extract_domain(article.source_url),
        "is_read": article.is_read,
        "preview": html_to_text(article.description, PREVIEW_LENGTH),
        "image_url": article.image_url,
    }


def _parse_filter(filter_option: str) -> FilterOption:
    return FilterOption(filter_option.strip().lower() or FilterOption.ALL.value)


async def add_feed(url: str, name: str = "", ctx: Context = None) -> Dict[str, Any]:
    """Subscribe to an RSS or Atom feed and fetch it right away.

    Args:
        url: Feed URL (must be http:// or https://)
        name: Display name (empty string derives one from the URL's domain)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - feed: object with id, name, url
        - new_articles: articles stored by the first fetch
        - fetch_error: why the first fetch failed, null if it did not
        - error: string if success is False
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"add_feed called: url={url}, name={name}")

    url = url.strip()
    if not is_valid_url(url):
        return {
            "success": False,
            "error": f"Invalid feed URL: {url}. Use an http:// or https:// URL.",
        }

    name = name.strip() or extract_domain_name(url)

    try:
        source = await database.add_feed_source(name=name, url=url)
    except ValueError as e:
        return {
            "success": False,
            "error": str(e),
        }

    result = await orchestrator.fetch_one(source)

    return {
        "success": True,
        "feed": {
            "id": source.id,
            "name": source.name,
            "url": source.url,
        },
        "new_articles": len(result.new_articles),
        "fetch_error": result.error,
    }


async def edit_feed(
    name: str,
    new_name: str = "",
    new_url: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Rename a feed and/or change its URL.

    Args:
        name: Current name of the feed
        new_name: New display name (empty string keeps the current one)
        new_url: New feed URL (empty string keeps the current one)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - feed: object with id, name, url
        - error: string if feed not found or the new values are invalid
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"edit_feed called: name={name}, new_name={new_name}, new_url={new_url}")

    new_url = new_url.strip()
    if new_url and not is_valid_url(new_url):
        return {
            "success": False,
            "error": f"Invalid feed URL: {new_url}. Use an http:// or https:// URL.",
        }

    try:
        source = await database.update_feed_source(
            name,
            new_name=new_name.strip() or None,
            new_url=new_url or None,
        )
    except ValueError as e:
        return {
            "success": False,
            "error": str(e),
        }

    if source is None:
        return {
            "success": False,
            "error": f"Feed '{name}' not found",
        }

    return {
        "success": True,
        "feed": {
            "id": source.id,
            "name": source.name,
            "url": source.url,
        },
    }


async def remove_feed(name: str, ctx: Context = None) -> Dict[str, Any]:
    """Unsubscribe from a feed and delete its articles.

    Deleted article links are remembered so they never come back, even if the
    feed is added again.

    Args:
        name: Name of the feed to remove (case-sensitive, must match exactly)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - message: confirmation string if successful
        - articles_deleted: count of articles removed
        - error: string if feed not found
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"remove_feed called: name={name}")

    success, article_count = await database.remove_feed_source(name)

    if success:
        return {
            "success": True,
            "message": f"Removed feed '{name}' and {article_count} articles",
            "articles_deleted": article_count,
        }
    else:
        return {
            "success": False,
            "error": f"Feed '{name}' not found",
        }


async def list_feeds(ctx: Context = None) -> Dict[str, Any]:
    """List all subscribed feeds with article counts.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - count: number of feeds
        - feeds: list of feed objects with id, name, url, domain, last_updated,
          total_articles, unread_articles
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info("list_feeds called")

    feeds = await database.list_feed_sources()
    for feed in feeds:
        feed["domain"] = extract_domain(feed["url"])

    return {
        "success": True,
        "count": len(feeds),
        "feeds": feeds,
    }


async def refresh_feeds(feed_name: str = "", ctx: Context = None) -> Dict[str, Any]:
    """Fetch all feeds (or one feed) and store new articles.

    Feeds are fetched concurrently. A feed that fails does not affect the
    others; its error is reported in its result entry. Articles whose links
    were deleted before are never re-added.

    Args:
        feed_name: Refresh only this feed (empty string refreshes all feeds)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - feeds_refreshed: number of feeds processed
        - total_new_articles: new articles stored across all feeds
        - notifications: human-readable new-content messages
        - results: per-feed results with feed name, new_articles, items_parsed, error
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"refresh_feeds called: feed_name={feed_name}")

    if feed_name:
        source = await database.get_feed_source_by_name(feed_name)
        if source is None:
            return {
                "success": False,
                "error": f"Feed '{feed_name}' not found",
            }
        summary = await orchestrator.refresh_all([source])
    else:
        summary = await refresh_all_sources()

    # Only the sources refreshed by this call
    notifications = [
        _notification_message(result.source_name, len(result.new_articles))
        for result in summary.results
        if result.new_articles
    ]

    return {
        "success": True,
        "feeds_refreshed": summary.sources_refreshed,
        "total_new_articles": summary.total_new_articles,
        "notifications": notifications,
        "results": [
            {
                "feed": result.source_name,
                "new_articles": len(result.new_articles),
                "items_parsed": result.items_parsed,
                "error": result.error,
            }
            for result in summary.results
        ],
    }


async def refresh_status(ctx: Context = None) -> Dict[str, Any]:
    """Report whether a refresh is currently running.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - busy: true while any feed fetch is outstanding
        - refresh_interval_minutes: minutes between automatic refreshes,
          null when automatic refresh is not running
    """
    interval = scheduler.get_polling_interval()

    return {
        "success": True,
        "busy": orchestrator.status.busy,
        "refresh_interval_minutes": interval // 60 if interval else None,
    }


async def set_refresh_interval(minutes: int, ctx: Context = None) -> Dict[str, Any]:
    """Change how often all feeds are refreshed automatically.

    Args:
        minutes: One of 5, 10, 15 or 30
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - refresh_interval_minutes: the new interval
        - error: string if the interval is not offered or automatic refresh is off
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"set_refresh_interval called: minutes={minutes}")

    allowed = [seconds // 60 for seconds in scheduler.POLLING_INTERVALS]
    if minutes not in allowed:
        return {
            "success": False,
            "error": f"Invalid interval: {minutes}. Use one of {allowed} minutes",
        }

    if not scheduler.set_polling_interval(minutes * 60):
        return {
            "success": False,
            "error": "Automatic refresh is not running",
        }

    return {
        "success": True,
        "refresh_interval_minutes": minutes,
    }


async def list_articles(
    feed_name: str = "",
    read_filter: str = "all",
    limit: int = 50,
    offset: int = 0,
    ctx: Context = None,
) -> Dict[str, Any]:
    """List articles, newest first.

    Args:
        feed_name: Only articles from this feed (empty string for all feeds)
        read_filter: "all", "unread" or "read" (default: "all")
        limit: Maximum number of articles to return (default: 50)
        offset: Number of articles to skip, for paging (default: 0)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - count: number of articles returned
        - total: number of articles matching the filters
        - unread_count: unread articles for the same feed filter
        - articles: list of article objects with id, title, link, dates,
          source, read status, plain-text preview and image URL
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"list_articles called: feed_name={feed_name}, read_filter={read_filter}, limit={limit}, offset={offset}")

    try:
        filter_option = _parse_filter(read_filter)
    except ValueError:
        return {
            "success": False,
            "error": f"Invalid filter: {read_filter}. Use 'all', 'unread' or 'read'",
        }

    source_name = feed_name or None
    articles = await database.list_articles(
        source_name=source_name,
        filter_option=filter_option,
        limit=limit,
        offset=offset,
    )
    total = await database.count_articles(source_name, filter_option)
    unread_count = await database.count_articles(source_name, FilterOption.UNREAD)

    return {
        "success": True,
        "count": len(articles),
        "total": total,
        "unread_count": unread_count,
        "articles": [_article_to_dict(a) for a in articles],
    }


def _article_result(article: Optional[Article], article_id: int) -> Dict[str, Any]:
    if article is None:
        return {
            "success": False,
            "error": f"Article with id {article_id} not found",
        }

    return {
        "success": True,
        "article": {
            "id": article.id,
            "title": article.title,
            "link": article.link,
            "is_read": article.is_read,
        },
    }


async def mark_article_read(article_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Mark a specific article as read.

    Args:
        article_id: Database ID of the article (from list_articles response)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - article: object with id, title, link, is_read (if found)
        - error: string if article not found
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"mark_article_read called: article_id={article_id}")

    return _article_result(await database.mark_article_read(article_id), article_id)


async def mark_article_unread(article_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Mark a specific article as unread.

    Args:
        article_id: Database ID of the article (from list_articles response)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - article: object with id, title, link, is_read (if found)
        - error: string if article not found
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"mark_article_unread called: article_id={article_id}")

    return _article_result(await database.mark_article_unread(article_id), article_id)


async def toggle_article_read(article_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Flip an article between read and unread.

    Args:
        article_id: Database ID of the article (from list_articles response)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - article: object with id, title, link, is_read (if found)
        - error: string if article not found
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"toggle_article_read called: article_id={article_id}")

    return _article_result(await database.toggle_article_read(article_id), article_id)


async def mark_all_read(feed_name: str = "", ctx: Context = None) -> Dict[str, Any]:
    """Mark all unread articles as read, optionally for one feed only.

    Args:
        feed_name: Only mark articles from this feed (empty string marks all feeds)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - articles_marked_read: count of articles updated
        - feed_filter: the feed_name filter if provided, null otherwise
        - error: string if specified feed not found
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"mark_all_read called: feed_name={feed_name}")

    count = await database.mark_all_read(feed_name or None)

    if feed_name and count == 0:
        source = await database.get_feed_source_by_name(feed_name)
        if not source:
            return {
                "success": False,
                "error": f"Feed '{feed_name}' not found",
            }

    return {
        "success": True,
        "articles_marked_read": count,
        "feed_filter": feed_name or None,
    }


async def delete_article(article_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Delete an article for good.

    Its link is remembered, so the article will not reappear on the next
    refresh.

    Args:
        article_id: Database ID of the article (from list_articles response)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - message: confirmation string if successful
        - error: string if article not found
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"delete_article called: article_id={article_id}")

    article = await database.delete_article(article_id)

    if article is None:
        return {
            "success": False,
            "error": f"Article with id {article_id} not found",
        }

    return {
        "success": True,
        "message": f"Deleted article '{article.title}'",
    }


async def clean_read_articles(feed_name: str = "", ctx: Context = None) -> Dict[str, Any]:
    """Delete every read article, optionally for one feed only.

    Deleted links are remembered so the articles do not come back.

    Args:
        feed_name: Only clean articles from this feed (empty string cleans all feeds)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - articles_deleted: count of articles removed
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"clean_read_articles called: feed_name={feed_name}")

    count = await database.clean_read_articles(feed_name or None)

    return {
        "success": True,
        "articles_deleted": count,
    }


async def clean_old_articles(days: int = 30, feed_name: str = "", ctx: Context = None) -> Dict[str, Any]:
    """Delete articles published more than the given number of days ago.

    Articles without a recognisable publication date are kept. Deleted links
    are remembered so the articles do not come back.

    Args:
        days: Age limit in days (default: 30)
        feed_name: Only clean articles from this feed (empty string cleans all feeds)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - articles_deleted: count of articles removed
        - error: string if days is not positive
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"clean_old_articles called: days={days}, feed_name={feed_name}")

    if days <= 0:
        return {
            "success": False,
            "error": f"Invalid age: {days}. Use a positive number of days",
        }

    count = await database.clean_old_articles(days, feed_name or None)

    return {
        "success": True,
        "articles_deleted": count,
    }


async def clean_all_articles(feed_name: str = "", ctx: Context = None) -> Dict[str, Any]:
    """Delete every article, optionally for one feed only.

    Deleted links are remembered, so only articles published after this are
    added by later refreshes.

    Args:
        feed_name: Only clean articles from this feed (empty string cleans all feeds)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - articles_deleted: count of articles removed
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"clean_all_articles called: feed_name={feed_name}")

    count = await database.clean_all_articles(feed_name or None)

    return {
        "success": True,
        "articles_deleted": count,
    }


# List of feed tools for registration
feed_tools = [
    add_feed,
    edit_feed,
    remove_feed,
    list_feeds,
    refresh_feeds,
    refresh_status,
    set_refresh_interval,
    list_articles,
    mark_article_read,
    mark_article_unread,
    toggle_article_read,
    mark_all_read,
    delete_article,
    clean_read_articles,
    clean_old_articles,
    clean_all_articles,
]
