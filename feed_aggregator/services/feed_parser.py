"""Feed parser service.

This module parses RSS 2.0 and Atom documents in a single streaming pass and
extracts raw items. Bytes are pushed into an incremental XML pull parser and
finished items are handed out as soon as their closing tag is seen, so the
document is never held as a tree.
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from feed_aggregator.log_system.unified_logger import UnifiedLogger
from feed_aggregator.models.schemas import RawItem


# Elements that delimit one item: RSS <item>, Atom <entry>
ITEM_TAGS = frozenset({"item", "entry"})

# Element name (lowercased, prefixed) -> RawItem field
FIELD_ALIASES: Dict[str, str] = {
    "title": "title",
    "link": "link",
    "pubdate": "pub_date",
    "published": "pub_date",
    "dc:date": "pub_date",
    "updated": "pub_date",
    "description": "description",
    "summary": "description",
    "content:encoded": "description",
    "content": "description",
}

# Namespaces with a fixed name regardless of the prefix a document binds them to.
# Unknown namespaces fall back to the document prefix.
KNOWN_NAMESPACES: Dict[str, str] = {
    "http://www.w3.org/2005/Atom": "",
    "http://purl.org/atom/ns#": "",
    "http://purl.org/rss/1.0/": "",
    "http://www.w3.org/1999/xhtml": "",
    "http://purl.org/dc/elements/1.1/": "dc",
    "http://purl.org/rss/1.0/modules/content/": "content",
    "http://search.yahoo.com/mrss/": "media",
}

# Elements whose url/href attribute is a preview image candidate
IMAGE_TAGS = frozenset({"enclosure", "media:content", "media:thumbnail"})

IMG_SRC_PATTERN = re.compile(r"""<img[^>]+src\s*=\s*["']([^"']+)["']""", re.IGNORECASE)

DEFAULT_CHUNK_SIZE = 64 * 1024


def find_image_in_html(html: str) -> Optional[str]:
    """Return the src of the first <img> tag in an HTML fragment."""
    match = IMG_SRC_PATTERN.search(html)
    return match.group(1) if match else None


def _inner_markup(element: ET.Element) -> str:
    """Text of an element with any child elements serialized as markup.

    Covers Atom ``type="xhtml"`` content and unescaped HTML in descriptions.
    Namespaces are dropped from the children so the result reads as plain HTML.
    """
    if len(element) == 0:
        return element.text or ""

    parts = [element.text or ""]
    for child in element:
        for node in child.iter():
            if isinstance(node.tag, str) and node.tag.startswith("{"):
                node.tag = node.tag.split("}", 1)[1]
        # tostring includes the child's tail
        parts.append(ET.tostring(child, encoding="unicode"))
    return "".join(parts)


@dataclass
class _ItemState:
    """Fields collected for the item currently open."""

    depth: int
    values: Dict[str, str] = field(default_factory=dict)
    link: str = ""
    fallback_link: str = ""
    image_url: Optional[str] = None

    def offer_link(self, value: str, rel: Optional[str] = None) -> None:
        # Atom rel="self"/"enclosure"/"replies" links only count if nothing better shows up
        if rel and rel.strip().lower() != "alternate":
            if not self.fallback_link:
                self.fallback_link = value
        elif not self.link:
            self.link = value

    def offer_value(self, name: str, value: str) -> None:
        if value and not self.values.get(name):
            self.values[name] = value

    def finish(self) -> Optional[RawItem]:
        title = self.values.get("title", "").strip()
        link = (self.link or self.fallback_link).strip()
        if not title or not link:
            return None

        description = self.values.get("description", "")
        image_url = self.image_url
        if image_url is None and description:
            image_url = find_image_in_html(description)

        return RawItem(
            title=title,
            link=link,
            pub_date=self.values.get("pub_date", ""),
            description=description,
            image_url=image_url,
        )


class FeedDocumentParser:
    """Incremental RSS/Atom item extractor.

    Feed it byte chunks with :meth:`feed` and finish with :meth:`close`; both
    return the items completed by that call. A malformed document is not
    fatal: the error is stored in :attr:`error`, logged, and parsing stops.
    Items completed before the error have already been returned.
    """

    def __init__(self) -> None:
        self._pull = ET.XMLPullParser(events=("start", "end", "start-ns"))
        self._prefixes: Dict[str, str] = {}
        self._depth = 0
        self._item: Optional[_ItemState] = None
        self._closed = False
        self.error: Optional[str] = None

    def feed(self, chunk: bytes) -> List[RawItem]:
        """Push a chunk of the document and return items finished by it."""
        if self.error is not None or self._closed:
            return []

        try:
            self._pull.feed(chunk)
        except ET.ParseError as e:
            self._fail(e)
        return self._drain()

    def close(self) -> List[RawItem]:
        """Signal end of document and return any remaining items."""
        if self.error is not None or self._closed:
            return []

        self._closed = True
        try:
            self._pull.close()
        except ET.ParseError as e:
            items = self._drain()
            self._fail(e)
            return items
        return self._drain()

    def _fail(self, error: ET.ParseError) -> None:
        if self.error is None:
            self.error = str(error)
            logger = UnifiedLogger.get_logger(__name__)
            logger.warning(f"XML parsing error: {error}")

    def _drain(self) -> List[RawItem]:
        items: List[RawItem] = []
        try:
            for event, payload in self._pull.read_events():
                item = self._handle(event, payload)
                if item is not None:
                    items.append(item)
        except ET.ParseError as e:
            self._fail(e)
        return items

    def _qualified_name(self, tag: str) -> str:
        if tag.startswith("{"):
            uri, local = tag[1:].split("}", 1)
            prefix = KNOWN_NAMESPACES.get(uri)
            if prefix is None:
                prefix = self._prefixes.get(uri, "")
            tag = f"{prefix}:{local}" if prefix else local
        return tag.lower()

    def _handle(self, event: str, payload) -> Optional[RawItem]:
        if event == "start-ns":
            prefix, uri = payload
            self._prefixes[uri] = prefix
            return None

        name = self._qualified_name(payload.tag)

        if event == "start":
            self._depth += 1
            self._on_start(name, payload.attrib)
            return None

        depth = self._depth
        self._depth -= 1
        return self._on_end(name, payload, depth)

    def _on_start(self, name: str, attrib: Dict[str, str]) -> None:
        if self._item is None:
            if name in ITEM_TAGS:
                self._item = _ItemState(depth=self._depth)
            return

        if name == "link":
            href = (attrib.get("href") or attrib.get("url") or "").strip()
            if href:
                self._item.offer_link(href, attrib.get("rel"))
        elif name in IMAGE_TAGS and self._item.image_url is None:
            url = (attrib.get("url") or attrib.get("href") or "").strip()
            if url:
                self._item.image_url = url

    def _on_end(self, name: str, element: ET.Element, depth: int) -> Optional[RawItem]:
        item = self._item
        if item is None:
            return None

        if depth == item.depth and name in ITEM_TAGS:
            self._item = None
            element.clear()
            return item.finish()

        # Only direct children of the item carry its fields
        if depth == item.depth + 1 and name in FIELD_ALIASES:
            target = FIELD_ALIASES[name]
            # Descriptions keep embedded markup, other fields are plain text
            if target == "description":
                text = _inner_markup(element).strip()
            else:
                text = "".join(element.itertext()).strip()
            if target == "link":
                if text:
                    item.offer_link(text)
            else:
                item.offer_value(target, text)
        return None


def iter_feed_items(
    chunks: Iterable[bytes],
    parser: Optional[FeedDocumentParser] = None,
) -> Iterator[RawItem]:
    """Lazily yield raw items from a stream of document chunks.

    Args:
        chunks: Byte chunks of an RSS or Atom document
        parser: Optional parser instance, to inspect ``error`` afterwards

    Yields:
        RawItem for every item with a non-empty title and link
    """
    if parser is None:
        parser = FeedDocumentParser()

    for chunk in chunks:
        yield from parser.feed(chunk)
        if parser.error is not None:
            return

    yield from parser.close()


def _split_chunks(body: bytes, chunk_size: int) -> Iterator[bytes]:
    for start in range(0, len(body), chunk_size):
        yield body[start:start + chunk_size]


def parse_feed_document(
    body: bytes,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Tuple[List[RawItem], Optional[str]]:
    """Parse a complete feed document.

    Args:
        body: Raw response body
        chunk_size: Size of the chunks pushed into the streaming parser

    Returns:
        Tuple of (items parsed, error message or None)
    """
    parser = FeedDocumentParser()
    items = list(iter_feed_items(_split_chunks(body, chunk_size), parser))
    return items, parser.error
