"""Article normalizer.

Turns raw feed items into candidate articles and parses publication dates.
"""

from datetime import datetime, timezone
from typing import Optional

from feed_aggregator.models.schemas import Article, FeedSource, RawItem


# Literal suffixes dropped from raw dates before storage
DATE_NOISE = ("+0000", "GMT")

# Tried in order by parse_date, first match wins
DATE_FORMATS = (
    "%a, %d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S",
)


def fallback_date_string(now: Optional[datetime] = None) -> str:
    """String form of the current moment, used when an item has no date."""
    if now is None:
        now = datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S")


def clean_date_string(raw: str, now: Optional[datetime] = None) -> str:
    """Strip timezone noise from a raw date string.

    This is cosmetic only; no timezone conversion is attempted.

    Args:
        raw: Date string as found in the feed
        now: Moment to use for the fallback when nothing is left

    Returns:
        Cleaned date string, never empty
    """
    cleaned = raw or ""
    for noise in DATE_NOISE:
        cleaned = cleaned.replace(noise, "")
    cleaned = cleaned.strip()

    if not cleaned:
        return fallback_date_string(now)
    return cleaned


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Best-effort parse of a stored date string.

    Args:
        value: Date string, usually the cleaned ``pub_date`` of an article

    Returns:
        datetime if one of DATE_FORMATS matches, None otherwise
    """
    if not value:
        return None

    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def to_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC.

    Naive values are returned unchanged: their "+0000"/"GMT" suffix was
    stripped by clean_date_string, so they already read as UTC.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_item(
    raw: RawItem,
    source: FeedSource,
    now: Optional[datetime] = None,
) -> Article:
    """Build a candidate article from a raw item.

    Args:
        raw: Item produced by the feed parser
        source: Feed source the item was fetched from
        now: Moment to use for the date fallback

    Returns:
        Unsaved, unread Article
    """
    description = (raw.description or "").strip()

    return Article(
        id=None,
        title=raw.title.strip(),
        link=raw.link.strip(),
        pub_date=clean_date_string(raw.pub_date, now),
        source_name=source.name,
        source_url=source.url,
        is_read=False,
        description=description or None,
        image_url=raw.image_url,
    )
