"""Data models for feed_aggregator.

This module defines the core data structures for feed sources, articles and
the results produced by the ingestion pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class FilterOption(str, Enum):
    """Read-state filter for article listings."""

    ALL = "all"
    UNREAD = "unread"
    READ = "read"


@dataclass
class FeedSource:
    """Represents a subscribed feed."""

    id: int
    name: str
    url: str
    last_updated: Optional[datetime] = None


@dataclass
class RawItem:
    """An item as extracted from a feed document, before normalization."""

    title: str = ""
    link: str = ""
    pub_date: str = ""
    description: str = ""
    image_url: Optional[str] = None


@dataclass
class Article:
    """Represents an article from a feed source.

    ``id`` is None until the article has been persisted.
    """

    id: Optional[int]
    title: str
    link: str
    pub_date: str
    source_name: str
    source_url: str
    is_read: bool = False
    description: Optional[str] = None
    image_url: Optional[str] = None
    discovered_date: Optional[datetime] = None

    @property
    def published_at(self) -> Optional[datetime]:
        """Publication date parsed from ``pub_date``, None if unparseable."""
        from feed_aggregator.services.normalizer import parse_date

        return parse_date(self.pub_date)


@dataclass
class FetchResult:
    """Outcome of refreshing a single feed source."""

    source_name: str
    success: bool = False
    items_parsed: int = 0
    new_articles: List[Article] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RefreshSummary:
    """Outcome of refreshing a set of feed sources."""

    results: List[FetchResult] = field(default_factory=list)

    @property
    def sources_refreshed(self) -> int:
        return len(self.results)

    @property
    def total_new_articles(self) -> int:
        return sum(len(r.new_articles) for r in self.results)
