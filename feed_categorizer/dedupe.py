from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .post import CanonicalPost


def dedupe_key(post: CanonicalPost) -> str:
    return (post.link or "").strip()


@dataclass
class SeenLinks:
    keys: set[str] = field(default_factory=set)

    def has_post(self, post: CanonicalPost) -> bool:
        return dedupe_key(post) in self.keys

    def add_post(self, post: CanonicalPost) -> str:
        key = dedupe_key(post)
        self.keys.add(key)
        return key


def dedupe_posts(posts: Iterable[CanonicalPost]) -> list[CanonicalPost]:
    """Keep the first post for each (already cleaned) link, in input order."""
    seen = SeenLinks()
    out: list[CanonicalPost] = []
    for post in posts:
        if seen.has_post(post):
            continue
        seen.add_post(post)
        out.append(post)
    return out
