from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from .errors import ConfigError
from .run_log import RunLogger, ensure_logger

DEFAULT_CATEGORY = "General"
MAX_KEYWORD_CHARS = 100


@dataclass(frozen=True)
class CategoryRule:
    name: str
    url_keywords: tuple[str, ...] = ()
    title_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class CategoryRules:
    """
    Immutable, load-once category configuration.

    Categories keep their configured order. Whole-word keywords are compiled to
    word-boundary patterns here, never per post.
    """

    categories: tuple[CategoryRule, ...] = ()
    default_category: str = DEFAULT_CATEGORY
    whole_word_patterns: Mapping[str, re.Pattern[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.categories)

    @classmethod
    def empty(cls, default_category: str = DEFAULT_CATEGORY) -> "CategoryRules":
        return cls(categories=(), default_category=default_category)

    @classmethod
    def from_definitions(
        cls,
        definitions: Mapping[str, Any],
        *,
        default_category: str = DEFAULT_CATEGORY,
        whole_word_keywords: Iterable[Any] = (),
        logger: RunLogger | None = None,
    ) -> "CategoryRules":
        """
        Build rules from {name: [kw, ...]} (legacy) or {name: {urlKeywords, titleKeywords}}.

        Raises ConfigError on non-string keywords.
        """
        log = ensure_logger(logger)

        rules: list[CategoryRule] = []
        for name, definition in definitions.items():
            if isinstance(definition, (list, tuple)):
                url_kws: Sequence[Any] = ()
                title_kws: Sequence[Any] = definition
            elif isinstance(definition, Mapping):
                url_kws = definition.get("urlKeywords") or definition.get("url_keywords") or ()
                title_kws = definition.get("titleKeywords") or definition.get("title_keywords") or ()
            elif hasattr(definition, "url_keywords") and hasattr(definition, "title_keywords"):
                url_kws = definition.url_keywords
                title_kws = definition.title_keywords
            else:
                raise ConfigError(f"Category {name!r} must be a keyword list or an object")

            rules.append(
                CategoryRule(
                    name=str(name),
                    url_keywords=_keyword_tuple(url_kws, where=f"{name}.urlKeywords"),
                    title_keywords=_keyword_tuple(title_kws, where=f"{name}.titleKeywords"),
                )
            )

        patterns = compile_whole_word_patterns(whole_word_keywords, logger=log)
        log.debug(
            "category_rules_built",
            categories=len(rules),
            whole_word_patterns=len(patterns),
        )
        return cls(
            categories=tuple(rules),
            default_category=(default_category or "").strip() or DEFAULT_CATEGORY,
            whole_word_patterns=MappingProxyType(patterns),
        )


def _keyword_tuple(values: Iterable[Any], *, where: str) -> tuple[str, ...]:
    out: list[str] = []
    for kw in values:
        if not isinstance(kw, str):
            raise ConfigError(f"Keyword in {where} must be a string, got {type(kw).__name__}")
        if kw.strip():
            out.append(kw)
    return tuple(out)


def compile_whole_word_patterns(
    keywords: Iterable[Any],
    *,
    logger: RunLogger | None = None,
) -> dict[str, re.Pattern[str]]:
    log = ensure_logger(logger)
    patterns: dict[str, re.Pattern[str]] = {}

    for kw in keywords:
        if not isinstance(kw, str):
            log.warning("whole_word_keyword_invalid_type", keyword_type=type(kw).__name__)
            continue
        trimmed = kw.strip()
        if not trimmed:
            log.warning("whole_word_keyword_empty")
            continue
        if len(trimmed) > MAX_KEYWORD_CHARS:
            log.warning("whole_word_keyword_too_long", length=len(trimmed), prefix=trimmed[:20])
            continue

        key = trimmed.lower()
        try:
            patterns[key] = re.compile(rf"\b{re.escape(key)}\b")
        except re.error as e:
            log.warning("whole_word_keyword_uncompilable", keyword=key, error=str(e))

    return patterns


def categorize(
    title: str,
    url: str,
    rules: CategoryRules,
    *,
    logger: RunLogger | None = None,
) -> str:
    """
    Return exactly one category for a post.

    1. URL keywords across every category (substring, case-insensitive).
    2. Title keywords across every category, only if step 1 found nothing;
       whole-word keywords use their compiled pattern, the rest substring match.
    3. The default category.
    """
    log = ensure_logger(logger)
    title_lower = (title or "").lower()
    url_lower = (url or "").lower()

    if url_lower:
        for rule in rules.categories:
            for kw in rule.url_keywords:
                if kw.lower() in url_lower:
                    log.debug("categorized_by_url", title=title, category=rule.name, keyword=kw)
                    return rule.name

    for rule in rules.categories:
        for kw in rule.title_keywords:
            key = kw.strip().lower()
            pattern = rules.whole_word_patterns.get(key)
            if pattern is not None:
                matched = pattern.search(title_lower) is not None
            else:
                matched = key in title_lower
            if matched:
                log.debug("categorized_by_title", title=title, category=rule.name, keyword=kw)
                return rule.name

    log.debug("categorized_default", title=title, category=rules.default_category)
    return rules.default_category
