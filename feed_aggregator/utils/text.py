"""URL and text helpers used by the tools layer and the fetcher."""

from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup


def is_valid_url(url: str) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_domain(url: str) -> str:
    """Host of a URL without a leading ``www.``; the input itself if unparseable."""
    host = urlparse(url).hostname
    if not host:
        return url

    parts = host.split(".")
    if len(parts) > 2 and parts[0] == "www":
        return ".".join(parts[1:])
    return host


def extract_domain_name(url: str) -> str:
    """Guess a display name for a feed from its URL.

    ``https://www.example.com/feed`` becomes ``Example``.
    """
    host = urlparse(url).hostname
    if not host:
        return "RSS Feed"

    parts = host.split(".")
    if len(parts) > 2 and parts[0] == "www":
        return parts[1].capitalize()
    if len(parts) > 1:
        return parts[0].capitalize()
    return host.capitalize()


def html_to_text(html: Optional[str], max_length: int = 0) -> str:
    """Strip markup from a description for display.

    Args:
        html: Description as stored, may contain HTML
        max_length: Truncate to this many characters (0 for no limit)

    Returns:
        Plain text with collapsed whitespace
    """
    if not html:
        return ""

    text = BeautifulSoup(html, "html.parser").get_text(separator=" ")
    text = " ".join(text.split())

    if max_length and len(text) > max_length:
        text = text[:max_length].rstrip() + "..."
    return text
