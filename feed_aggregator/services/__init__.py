"""Services for feed_aggregator."""

from .feed_parser import FeedDocumentParser, iter_feed_items, parse_feed_document
from .fetcher import fetch_one
from .merger import merge_articles
from .normalizer import clean_date_string, normalize_item, parse_date
from .refresh import RefreshOrchestrator, RefreshStatus

__all__ = [
    "FeedDocumentParser",
    "iter_feed_items",
    "parse_feed_document",
    "fetch_one",
    "merge_articles",
    "clean_date_string",
    "normalize_item",
    "parse_date",
    "RefreshOrchestrator",
    "RefreshStatus",
]
