from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when settings or rule files are structurally invalid."""


class FetchError(RuntimeError):
    """Raised when an HTTP fetch cannot produce a usable response body."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FeedParseError(RuntimeError):
    """Raised when a feed payload cannot be parsed as XML or JSON."""
