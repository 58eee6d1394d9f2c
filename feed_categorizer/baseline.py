"""Resolve the recency cutoff that posts must be newer than."""

from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

from .config_schema import BaselineConfig
from .fetch import Fetcher
from .normalize import parse_instant
from .parse_feed import parse_feed
from .post import CanonicalPost
from .run_log import RunLogger, ensure_logger

FALLBACK_LOOKBACK = timedelta(hours=24)

BaselineSource = Literal["override", "reference_feed", "fallback"]

_DASHES = ("–", "—", "‒", "−")


@dataclass(frozen=True)
class FilterBaseline:
    cutoff: datetime
    source: BaselineSource
    buffer_minutes: int = 0


def _utc_now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def fallback_cutoff(now: datetime | None = None) -> datetime:
    return _utc_now(now) - FALLBACK_LOOKBACK


def normalize_marker_title(title: str) -> str:
    text = html.unescape(title or "")
    for dash in _DASHES:
        text = text.replace(dash, "-")
    return text.strip().lower()


def latest_marker_instant(
    posts: list[CanonicalPost],
    marker: str,
    *,
    logger: RunLogger | None = None,
) -> datetime | None:
    """Newest instant among posts whose decoded title starts with the marker."""
    log = ensure_logger(logger)
    prefix = (marker or "").strip().lower()

    matches: list[tuple[datetime, CanonicalPost]] = []
    for post in posts:
        if not normalize_marker_title(post.title).startswith(prefix):
            continue
        instant = parse_instant(post.published_at)
        if instant is None:
            log.debug("baseline_marker_post_undated", title=post.title, published_at=post.published_at)
            continue
        matches.append((instant, post))

    if not matches:
        log.info(
            "baseline_marker_not_found",
            marker=prefix,
            sample_titles=[p.title for p in posts[:5]],
        )
        return None

    matches.sort(key=lambda pair: pair[0], reverse=True)
    instant, post = matches[0]
    log.info("baseline_marker_found", title=post.title, cutoff=instant.isoformat())
    return instant


def lookup_reference_baseline(
    config: BaselineConfig,
    *,
    fetcher: Fetcher,
    logger: RunLogger | None = None,
) -> datetime | None:
    log = ensure_logger(logger)
    url = config.reference_feed_url
    payload = fetcher.fetch(url)
    if not payload:
        log.warning("baseline_reference_unavailable", url=url)
        return None

    posts = parse_feed(payload, feed_url=url, logger=log)
    if not posts:
        log.warning("baseline_reference_empty", url=url)
        return None
    return latest_marker_instant(posts, config.title_marker, logger=log)


def resolve_baseline(
    config: BaselineConfig,
    *,
    fetcher: Fetcher | None = None,
    reference_instant: datetime | None = None,
    logger: RunLogger | None = None,
    now: datetime | None = None,
) -> FilterBaseline:
    """
    Resolution order:
    1. explicit override (unparseable -> now - 24h)
    2. newest marker post of the reference feed (or a pre-fetched reference_instant)
    3. now - 24h (UTC)
    A positive, enabled buffer is then added to the cutoff.
    """
    log = ensure_logger(logger)
    override = (config.minimum_datetime or "").strip()

    source: BaselineSource
    if override:
        parsed = parse_instant(override)
        if parsed is None:
            cutoff = fallback_cutoff(now)
            source = "fallback"
            log.warning("baseline_override_invalid", value=override, cutoff=cutoff.isoformat())
        else:
            cutoff = parsed
            source = "override"
    else:
        instant = reference_instant
        if instant is None and fetcher is not None:
            instant = lookup_reference_baseline(config, fetcher=fetcher, logger=log)
        if instant is not None:
            cutoff = instant
            source = "reference_feed"
        else:
            cutoff = fallback_cutoff(now)
            source = "fallback"

    buffer_minutes = 0
    if config.buffer_enabled and config.buffer_minutes > 0:
        buffer_minutes = int(config.buffer_minutes)
        cutoff = cutoff + timedelta(minutes=buffer_minutes)

    log.info(
        "baseline_resolved",
        cutoff=cutoff.isoformat(),
        source=source,
        buffer_minutes=buffer_minutes,
    )
    return FilterBaseline(cutoff=cutoff, source=source, buffer_minutes=buffer_minutes)
