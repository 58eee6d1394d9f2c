from __future__ import annotations

import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .authors import AuthorMappings, apply_author_mappings
from .baseline import FilterBaseline, lookup_reference_baseline, resolve_baseline
from .categorize import CategoryRules, categorize
from .config import Credentials
from .config_schema import AppSettings
from .date_filter import filter_by_baseline
from .dedupe import dedupe_posts
from .fetch import Fetcher
from .normalize import parse_instant
from .parse_feed import parse_feed
from .parse_shared import parse_shared_stories
from .post import CanonicalPost
from .run_log import RunLogger, ensure_logger
from .url_clean import clean_link

RECORD_COUNT_PARAM = "n"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class PipelineResult:
    posts: tuple[CanonicalPost, ...]
    categories: Mapping[str, tuple[CanonicalPost, ...]]
    baseline: FilterBaseline
    run_id: str = ""
    fetched: int = 0
    deduplicated: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "baseline": {
                "cutoff": self.baseline.cutoff.isoformat(),
                "source": self.baseline.source,
                "buffer_minutes": self.baseline.buffer_minutes,
            },
            "posts": [p.to_dict() for p in self.posts],
            "categories": {name: [p.link for p in posts] for name, posts in self.categories.items()},
        }


def with_record_count(url: str, count: int) -> str:
    """Set the item-count query parameter, replacing any existing value."""
    try:
        parts = urlsplit(url)
        pairs = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != RECORD_COUNT_PARAM]
    except ValueError:
        return url
    pairs.append((RECORD_COUNT_PARAM, str(int(count))))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(pairs), parts.fragment))


def source_url(settings: AppSettings) -> str:
    if settings.source.mode == "shared_items":
        shared = settings.shared_items
        base = f"{shared.api_base}/social/stories/{shared.user_id}/{shared.user_slug}"
        return with_record_count(base, settings.source.record_count)
    return with_record_count(settings.source.feed_url, settings.source.record_count)


def _sort_key(post: CanonicalPost) -> datetime:
    return parse_instant(post.published_at) or _OLDEST


def group_by_category(
    posts: Iterable[CanonicalPost],
    rules: CategoryRules,
    *,
    logger: RunLogger | None = None,
) -> dict[str, tuple[CanonicalPost, ...]]:
    """
    Configured categories first (in order, even when empty), then the default,
    then anything unexpected. Each group is newest-first; undated posts sink.
    """
    log = ensure_logger(logger)
    groups: dict[str, list[CanonicalPost]] = {name: [] for name in rules.names}
    groups.setdefault(rules.default_category, [])

    for post in posts:
        if post.category not in groups:
            log.warning("post_in_unconfigured_category", url=post.link, category=post.category)
            groups[post.category] = []
        groups[post.category].append(post)

    return {name: tuple(sorted(items, key=_sort_key, reverse=True)) for name, items in groups.items()}


def build_posts(
    raw_posts: Iterable[CanonicalPost],
    *,
    settings: AppSettings,
    rules: CategoryRules,
    authors: AuthorMappings,
    logger: RunLogger | None = None,
    now: datetime | None = None,
) -> list[CanonicalPost]:
    """Clean links, drop duplicate links, categorize, then map authors."""
    log = ensure_logger(logger)

    cleaned: list[CanonicalPost] = []
    for post in raw_posts:
        link = clean_link(
            post.link,
            campaign_domain=settings.links.campaign_domain,
            campaign_param=settings.links.campaign_param,
            now=now,
        )
        if not link:
            log.info("post_dropped_empty_link", title=post.title)
            continue
        cleaned.append(replace(post, link=link))

    unique = dedupe_posts(cleaned)
    if len(unique) != len(cleaned):
        log.info("duplicates_removed", removed=len(cleaned) - len(unique), kept=len(unique))

    categorized = [replace(p, category=categorize(p.title, p.link, rules, logger=log)) for p in unique]
    return apply_author_mappings(categorized, authors)


def refresh(
    settings: AppSettings,
    *,
    rules: CategoryRules,
    authors: AuthorMappings,
    credentials: Credentials | None = None,
    fetcher: Fetcher | None = None,
    logger: RunLogger | None = None,
    now: datetime | None = None,
) -> PipelineResult:
    """
    Run one refresh: fetch, parse, clean, dedupe, categorize, map authors, filter by
    baseline and group. Every collection here is local to the call.
    """
    log = ensure_logger(logger)
    run_id = uuid.uuid4().hex
    owns_fetcher = fetcher is None
    http = fetcher if fetcher is not None else Fetcher(
        user_agent=settings.http.user_agent,
        timeout_seconds=settings.http.timeout_seconds,
        retry_delay_seconds=settings.http.retry_delay_seconds,
        logger=log,
    )

    url = source_url(settings)
    mode = settings.source.mode
    auth = credentials.as_auth() if (mode == "shared_items" and credentials is not None) else None
    needs_reference = not settings.baseline.minimum_datetime.strip()

    log.info("refresh_started", url=url, run_id=run_id, mode=mode, reference_lookup=needs_reference)

    try:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="feed-fetch") as pool:
            source_future = pool.submit(http.fetch, url, auth=auth)
            reference_future: Future[datetime | None] | None = None
            if needs_reference:
                reference_future = pool.submit(
                    lookup_reference_baseline,
                    settings.baseline,
                    fetcher=http,
                    logger=log,
                )
            payload = source_future.result()
            reference_instant = reference_future.result() if reference_future is not None else None
    finally:
        if owns_fetcher:
            http.close()

    if mode == "shared_items":
        raw_posts = parse_shared_stories(payload, source_label=settings.shared_items.label, logger=log)
    else:
        raw_posts = parse_feed(payload, feed_url=url, logger=log)
    if settings.source.label:
        raw_posts = [replace(p, source_label=settings.source.label) for p in raw_posts]

    posts = build_posts(raw_posts, settings=settings, rules=rules, authors=authors, logger=log, now=now)

    baseline = resolve_baseline(
        settings.baseline,
        reference_instant=reference_instant,
        logger=log,
        now=now,
    )
    recent = filter_by_baseline(posts, baseline.cutoff, logger=log)
    groups = group_by_category(recent, rules, logger=log)

    log.info(
        "refresh_completed",
        run_id=run_id,
        fetched=len(raw_posts),
        unique=len(posts),
        kept=len(recent),
        cutoff=baseline.cutoff.isoformat(),
        baseline_source=baseline.source,
    )
    return PipelineResult(
        posts=tuple(recent),
        categories=MappingProxyType(groups),
        baseline=baseline,
        run_id=run_id,
        fetched=len(raw_posts),
        deduplicated=len(posts),
    )
