from __future__ import annotations

from datetime import datetime
from typing import Iterable

from .normalize import parse_instant
from .post import CanonicalPost
from .run_log import RunLogger, ensure_logger


def is_recent(post: CanonicalPost, cutoff: datetime) -> bool:
    """
    Posts without a timestamp are excluded; unparseable timestamps are kept, since
    they are not evidence of staleness. There is no upper (future) bound.
    """
    if not (post.published_at or "").strip():
        return False
    instant = parse_instant(post.published_at)
    if instant is None:
        return True
    return instant > cutoff


def filter_by_baseline(
    posts: Iterable[CanonicalPost],
    cutoff: datetime,
    *,
    logger: RunLogger | None = None,
) -> list[CanonicalPost]:
    log = ensure_logger(logger)
    kept: list[CanonicalPost] = []
    total = 0

    for post in posts:
        total += 1
        if is_recent(post, cutoff):
            kept.append(post)
            continue
        log.debug(
            "post_excluded_by_date",
            url=post.link,
            title=post.title,
            published_at=post.published_at or None,
        )

    log.info("date_filter_applied", kept=len(kept), total=total, cutoff=cutoff.isoformat())
    return kept
