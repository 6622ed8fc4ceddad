"""Feed fetch coordinator.

This module fetches one feed source over HTTP and drives the document through
parse, normalize and merge. Failures are logged and reported in the returned
FetchResult; nothing is raised to the caller.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import httpx

from feed_aggregator.config import ServerConfig, get_config
from feed_aggregator.log_system.unified_logger import UnifiedLogger
from feed_aggregator.models.schemas import Article, FeedSource, FetchResult
from feed_aggregator.services.feed_parser import parse_feed_document
from feed_aggregator.services.merger import merge_articles
from feed_aggregator.services.normalizer import normalize_item
from feed_aggregator.utils.text import is_valid_url


CompletionCallback = Callable[[FetchResult], None]
NotifyCallback = Callable[[FeedSource, List[Article]], None]


def create_http_client(config: Optional[ServerConfig] = None) -> httpx.AsyncClient:
    """Create the HTTP client shared by the fetches of one refresh."""
    if config is None:
        config = get_config()

    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=config.request_timeout,
        headers={"User-Agent": config.user_agent},
    )


def parse_and_normalize(
    body: bytes,
    source: FeedSource,
    now: Optional[datetime] = None,
) -> Tuple[List[Article], Optional[str]]:
    """Parse a feed body into candidate articles.

    Runs synchronously; callers on the event loop push it to a worker thread.

    Returns:
        Tuple of (candidate articles, parse error or None)
    """
    items, error = parse_feed_document(body)
    return [normalize_item(item, source, now) for item in items], error


async def _download(
    client: httpx.AsyncClient,
    source: FeedSource,
    result: FetchResult,
) -> Optional[bytes]:
    logger = UnifiedLogger.get_logger(__name__)

    try:
        response = await client.get(source.url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Network error for {source.name}: {e}")
        result.error = f"HTTP error: {e}"
        return None

    logger.debug(f"Response status code for {source.name}: {response.status_code}")
    return response.content


async def _run(
    source: FeedSource,
    result: FetchResult,
    client: Optional[httpx.AsyncClient],
    notify: Optional[NotifyCallback],
) -> None:
    logger = UnifiedLogger.get_logger(__name__)

    if not is_valid_url(source.url):
        logger.warning(f"Invalid URL: {source.url}")
        result.error = f"Invalid URL: {source.url}"
        return

    logger.info(f"Starting request for {source.name}")

    if client is None:
        async with create_http_client() as owned_client:
            body = await _download(owned_client, source, result)
    else:
        body = await _download(client, source, result)

    if body is None:
        return

    if not body.strip():
        logger.warning(f"No data received for {source.name}")
        result.error = "Empty response body"
        return

    articles, parse_error = await asyncio.to_thread(parse_and_normalize, body, source)
    result.items_parsed = len(articles)
    if parse_error:
        # Items parsed before the error are still merged
        result.error = f"XML parsing error: {parse_error}"

    result.new_articles = await merge_articles(source, articles)
    result.success = True

    if result.new_articles and notify is not None:
        notify(source, result.new_articles)


async def fetch_one(
    source: FeedSource,
    on_complete: Optional[CompletionCallback] = None,
    client: Optional[httpx.AsyncClient] = None,
    notify: Optional[NotifyCallback] = None,
) -> FetchResult:
    """Refresh a single feed source.

    ``on_complete`` is called exactly once with the result, whatever happens:
    invalid URL, transport error, empty body, malformed XML or success.

    Args:
        source: Feed source to refresh
        on_complete: Optional completion callback
        client: Shared HTTP client (a private one is created if omitted)
        notify: Called with the source and its new articles when there are any

    Returns:
        FetchResult describing the outcome
    """
    logger = UnifiedLogger.get_logger(__name__)
    result = FetchResult(source_name=source.name)

    try:
        await _run(source, result, client, notify)
    except Exception as e:
        logger.error(f"Error refreshing {source.name}: {e}", exc_info=True)
        result.success = False
        result.error = str(e)
    finally:
        if on_complete is not None:
            on_complete(result)

    return result
