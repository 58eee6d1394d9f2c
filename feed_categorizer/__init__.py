from __future__ import annotations

from .config import load_author_mappings, load_category_rules, load_settings, resolve_credentials
from .config_schema import AppSettings
from .errors import ConfigError
from .pipeline import PipelineResult, refresh
from .post import CanonicalPost

__all__ = [
    "AppSettings",
    "CanonicalPost",
    "ConfigError",
    "PipelineResult",
    "load_author_mappings",
    "load_category_rules",
    "load_settings",
    "refresh",
    "resolve_credentials",
]
