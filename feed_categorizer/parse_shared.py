"""Parser for the authenticated shared-stories JSON API."""

from __future__ import annotations

import json
from typing import Any, Mapping

from .errors import FeedParseError
from .normalize import format_authors, normalize_timestamp, strip_html
from .post import CanonicalPost
from .run_log import RunLogger, ensure_logger, truncate

# Share time first: the list is ordered by when the curator shared a story.
_TIMESTAMP_KEYS = ("shared_date", "story_date", "story_timestamp")


def _coerce_str(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _decode_payload(payload: bytes | str) -> Mapping[str, Any]:
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FeedParseError(f"Invalid JSON: {e}") from e
    if not isinstance(data, Mapping):
        raise FeedParseError("Top-level JSON must be an object")
    return data


def story_timestamp(story: Mapping[str, Any]) -> str:
    for key in _TIMESTAMP_KEYS:
        value = _coerce_str(story.get(key))
        if value:
            return normalize_timestamp(value)
    return ""


def _feed_titles(data: Mapping[str, Any]) -> dict[str, str]:
    feeds = data.get("feeds")
    out: dict[str, str] = {}
    if isinstance(feeds, Mapping):
        for feed_id, feed in feeds.items():
            if isinstance(feed, Mapping):
                title = _coerce_str(feed.get("feed_title"))
                if title:
                    out[str(feed_id)] = title
    return out


def story_to_post(
    story: Mapping[str, Any],
    *,
    source_label: str,
    feed_titles: Mapping[str, str] | None = None,
) -> CanonicalPost | None:
    title = _coerce_str(story.get("story_title"))
    link = _coerce_str(story.get("story_permalink"))
    if not title or not link:
        return None

    label = source_label
    if feed_titles:
        label = feed_titles.get(_coerce_str(story.get("story_feed_id")), source_label)

    return CanonicalPost(
        title=title,
        link=link,
        description=strip_html(story.get("story_content")),
        published_at=story_timestamp(story),
        source_label=label,
        author=format_authors(story.get("story_authors")),
    )


def parse_shared_stories(
    payload: bytes | str,
    *,
    source_label: str,
    logger: RunLogger | None = None,
) -> list[CanonicalPost]:
    log = ensure_logger(logger)
    if not payload:
        return []

    try:
        data = _decode_payload(payload)
    except FeedParseError as e:
        log.warning("shared_parse_failed", reason=str(e))
        return []

    stories = data.get("stories")
    if not isinstance(stories, list):
        log.warning("shared_stories_missing", keys=sorted(str(k) for k in data.keys())[:20])
        return []

    feed_titles = _feed_titles(data)
    posts: list[CanonicalPost] = []
    for index, story in enumerate(stories):
        if not isinstance(story, Mapping):
            log.warning("shared_story_invalid", index=index, raw=truncate(repr(story), limit=500))
            continue
        try:
            post = story_to_post(story, source_label=source_label, feed_titles=feed_titles)
        except Exception as e:
            log.warning(
                "shared_story_failed",
                index=index,
                error_type=type(e).__name__,
                reason=str(e),
                raw=truncate(json.dumps(story, default=str), limit=500),
            )
            continue

        if post is None:
            log.info(
                "shared_story_dropped",
                index=index,
                reason="missing_title_or_link",
                story_hash=_coerce_str(story.get("story_hash")) or None,
            )
            continue
        posts.append(post)

    log.debug("shared_stories_parsed", stories=len(stories), posts=len(posts))
    return posts
