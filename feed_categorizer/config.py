from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .authors import AuthorMappings, AuthorRule
from .categorize import CategoryRules
from .config_schema import AppSettings, AuthorMappingsDocument, CategoriesDocument
from .errors import ConfigError
from .run_log import RunLogger, ensure_logger

CATEGORIES_FILENAME = "categories.json"
AUTHOR_MAPPINGS_FILENAME = "author_mappings.json"


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def as_auth(self) -> tuple[str, str]:
        return (self.username, self.password)


def load_settings(path: str | Path) -> AppSettings:
    """
    Load a YAML settings file and validate it into AppSettings.

    Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Settings file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read settings file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def resolve_credentials(
    settings: AppSettings, *, environ: Mapping[str, str] | None = None
) -> Credentials | None:
    """
    Shared-items mode needs a username (settings) and a password (environment).

    Returns None for RSS mode, which is unauthenticated.
    """
    if settings.source.mode != "shared_items":
        return None

    env = os.environ if environ is None else environ
    password_env = settings.shared_items.password_env
    password = (env.get(password_env) or "").strip()
    if not password:
        raise ConfigError(f"Missing required environment variables: {password_env}")

    return Credentials(username=settings.shared_items.username.strip(), password=password)


def settings_sha256(settings: AppSettings) -> str:
    payload = json.dumps(
        settings.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _read_rules_text(path: str | Path | None, default_name: str) -> tuple[str, str]:
    if path:
        p = Path(path)
        return p.read_text(encoding="utf-8"), str(p)
    ref = resources.files("feed_categorizer").joinpath("data", default_name)
    return ref.read_text(encoding="utf-8"), f"package:{default_name}"


def _read_rules_json(
    path: str | Path | None,
    default_name: str,
    *,
    log: RunLogger,
) -> tuple[Any, str] | None:
    """Missing or unparseable rule files are not fatal; callers substitute empty rules."""
    try:
        text, origin = _read_rules_text(path, default_name)
    except (OSError, ModuleNotFoundError) as e:
        log.warning("rules_file_unreadable", path=str(path or default_name), reason=str(e))
        return None

    try:
        return json.loads(text), origin
    except json.JSONDecodeError as e:
        log.warning("rules_file_invalid_json", path=origin, reason=str(e))
        return None


def load_category_rules(
    path: str | Path | None = None,
    *,
    logger: RunLogger | None = None,
) -> CategoryRules:
    """
    Load category rules once; the result is immutable and passed to the pipeline.

    Raises ConfigError for structurally invalid documents (e.g. non-string keywords).
    """
    log = ensure_logger(logger)
    loaded = _read_rules_json(path, CATEGORIES_FILENAME, log=log)
    if loaded is None:
        log.warning("category_rules_fallback", default_category="General")
        return CategoryRules.empty()

    data, origin = loaded
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level JSON in {origin} must be an object")

    try:
        doc = CategoriesDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, origin)) from e

    rules = CategoryRules.from_definitions(
        doc.normalized_categories(),
        default_category=doc.default_category,
        whole_word_keywords=doc.whole_word_keywords,
        logger=log,
    )
    log.info(
        "category_rules_loaded",
        path=origin,
        categories=len(rules.categories),
        whole_word_patterns=len(rules.whole_word_patterns),
    )
    return rules


def load_author_mappings(
    path: str | Path | None = None,
    *,
    logger: RunLogger | None = None,
) -> AuthorMappings:
    log = ensure_logger(logger)
    loaded = _read_rules_json(path, AUTHOR_MAPPINGS_FILENAME, log=log)
    if loaded is None:
        log.warning("author_mappings_fallback")
        return AuthorMappings()

    data, origin = loaded
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level JSON in {origin} must be an object")

    try:
        doc = AuthorMappingsDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, origin)) from e

    mappings = AuthorMappings(
        url_contains=tuple(AuthorRule(r.keyword, r.author) for r in doc.url_contains),
        author_contains=tuple(AuthorRule(r.keyword, r.author) for r in doc.author_contains),
        author_exact=tuple(AuthorRule(r.keyword, r.author) for r in doc.author_exact),
    )
    log.info(
        "author_mappings_loaded",
        path=origin,
        url_contains=len(mappings.url_contains),
        author_contains=len(mappings.author_contains),
        author_exact=len(mappings.author_exact),
    )
    return mappings


def _format_pydantic_errors(err: ValidationError, path: Path | str) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
