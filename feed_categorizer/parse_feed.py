"""RSS 2.0 / Atom parsing into CanonicalPost records."""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urlsplit
from xml.etree import ElementTree as ET

from .errors import FeedParseError
from .normalize import UNKNOWN_AUTHOR, clean_author, coerce_text, normalize_timestamp, strip_html
from .post import CanonicalPost
from .run_log import RunLogger, ensure_logger, truncate

_DESCRIPTION_TAGS = ("description", "summary", "content", "encoded")
_DATE_TAGS = ("pubDate", "published", "updated")


def _local(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _children(el: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in el if _local(child.tag) == name]


def _child(el: ET.Element, name: str) -> ET.Element | None:
    for child in el:
        if _local(child.tag) == name:
            return child
    return None


def _child_text(el: ET.Element, name: str) -> str:
    child = _child(el, name)
    if child is None:
        return ""
    return coerce_text(child).strip()


def parse_xml(payload: bytes | str) -> ET.Element:
    try:
        return ET.fromstring(payload)
    except ET.ParseError as e:
        raise FeedParseError(f"Invalid XML: {e}") from e


def find_items(root: ET.Element) -> tuple[ET.Element | None, list[ET.Element]]:
    """Return (channel-or-feed element, items) for rss/channel/item or feed/entry."""
    name = _local(root.tag)
    if name == "rss":
        channel = _child(root, "channel")
        if channel is None:
            return None, []
        return channel, _children(channel, "item")
    if name == "feed":
        return root, _children(root, "entry")
    if name == "RDF":
        channel = _child(root, "channel")
        return channel, _children(root, "item")
    return None, []


def extract_link(item: ET.Element) -> str:
    """
    Three shapes: <link>text</link>, <link href=".."/>, or several <link> elements
    where rel="alternate" (or no rel) wins over the first href.
    """
    links = _children(item, "link")
    if not links:
        guid = _child(item, "guid")
        if guid is not None and (guid.get("isPermaLink") or "true").lower() == "true":
            return coerce_text(guid).strip()
        return ""

    if len(links) == 1:
        only = links[0]
        text = coerce_text(only).strip()
        return text or (only.get("href") or "").strip()

    for link in links:
        rel = (link.get("rel") or "alternate").strip().lower()
        href = (link.get("href") or "").strip()
        if rel == "alternate" and href:
            return href

    for link in links:
        href = (link.get("href") or "").strip()
        if href:
            return href
        text = coerce_text(link).strip()
        if text:
            return text
    return ""


def extract_description(item: ET.Element) -> str:
    for name in _DESCRIPTION_TAGS:
        child = _child(item, name)
        if child is None:
            continue
        text = coerce_text(child).strip()
        if text:
            return text
    return ""


def extract_published(item: ET.Element) -> str:
    for name in _DATE_TAGS:
        value = _child_text(item, name)
        if value:
            return value
    return ""


def extract_author(item: ET.Element) -> str | None:
    author = _child(item, "author")
    if author is not None:
        if len(author) == 0:
            return (author.text or "").strip()
        name = _child(author, "name")
        if name is not None:
            return coerce_text(name).strip()
        text = (author.text or "").strip()
        # Structured author without a name element.
        return text or None

    creator = _child(item, "creator")
    if creator is not None:
        return coerce_text(creator).strip()
    return ""


def feed_title_for(channel: ET.Element | None, feed_url: str) -> str:
    if channel is not None:
        title = _child_text(channel, "title")
        if title:
            return title
    try:
        return urlsplit(feed_url).hostname or feed_url
    except ValueError:
        return feed_url


def parse_feed(
    payload: bytes | str,
    *,
    feed_url: str,
    logger: RunLogger | None = None,
) -> list[CanonicalPost]:
    """
    Parse an RSS/Atom payload. Malformed payloads yield [] and malformed items are
    skipped; both are logged.
    """
    log = ensure_logger(logger)
    if not payload:
        return []

    try:
        root = parse_xml(payload)
    except FeedParseError as e:
        log.warning("feed_parse_failed", url=feed_url, reason=str(e))
        return []

    channel, items = find_items(root)
    if channel is None and not items:
        log.warning("feed_channel_missing", url=feed_url, root=_local(root.tag))
        return []
    if not items:
        log.info("feed_empty", url=feed_url)
        return []

    feed_title = feed_title_for(channel, feed_url)
    log.debug("feed_items_found", url=feed_url, feed_title=feed_title, items=len(items))
    return list(_iter_posts(items, feed_title=feed_title, feed_url=feed_url, log=log))


def _iter_posts(
    items: Iterable[ET.Element],
    *,
    feed_title: str,
    feed_url: str,
    log: RunLogger,
) -> Iterable[CanonicalPost]:
    for index, item in enumerate(items):
        try:
            title_el = _child(item, "title")
            title = coerce_text(title_el).strip() if title_el is not None else "Untitled"
            link = extract_link(item)

            if not title or not link:
                log.info(
                    "feed_item_dropped",
                    url=feed_url,
                    index=index,
                    reason="missing_title" if not title else "missing_link",
                )
                continue

            raw_author = extract_author(item)
            author = clean_author(raw_author, feed_title=feed_title) if raw_author is not None else UNKNOWN_AUTHOR

            yield CanonicalPost(
                title=title,
                link=link,
                description=strip_html(extract_description(item)),
                published_at=normalize_timestamp(extract_published(item)),
                source_label=feed_title,
                author=author,
            )
        except Exception as e:
            log.warning(
                "feed_item_failed",
                url=feed_url,
                index=index,
                error_type=type(e).__name__,
                reason=str(e),
                raw=truncate(ET.tostring(item, encoding="unicode"), limit=500),
            )
