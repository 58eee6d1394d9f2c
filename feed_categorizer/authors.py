from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from .post import CanonicalPost


@dataclass(frozen=True)
class AuthorRule:
    keyword: str
    author: str


@dataclass(frozen=True)
class AuthorMappings:
    """Three priority tiers; the first tier with a hit decides the author."""

    url_contains: tuple[AuthorRule, ...] = ()
    author_contains: tuple[AuthorRule, ...] = ()
    author_exact: tuple[AuthorRule, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.url_contains or self.author_contains or self.author_exact)


def map_author(link: str, author: str, mappings: AuthorMappings) -> str:
    link_lower = (link or "").lower()
    author_text = author or ""
    author_lower = author_text.lower()

    for rule in mappings.url_contains:
        if rule.keyword and rule.keyword.lower() in link_lower:
            return rule.author

    for rule in mappings.author_contains:
        if rule.keyword and rule.keyword.lower() in author_lower:
            return rule.author

    for rule in mappings.author_exact:
        if rule.keyword.lower() == author_lower:
            return rule.author

    return author_text


def apply_author_mappings(posts: Iterable[CanonicalPost], mappings: AuthorMappings) -> list[CanonicalPost]:
    if mappings.is_empty:
        return list(posts)

    out: list[CanonicalPost] = []
    for post in posts:
        mapped = map_author(post.link, post.author, mappings)
        out.append(post if mapped == post.author else replace(post, author=mapped))
    return out
