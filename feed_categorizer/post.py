from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class CanonicalPost:
    """A single feed item, unified across RSS/Atom and the shared-items API."""

    title: str
    link: str
    description: str = ""
    published_at: str = ""
    category: str = ""
    source_label: str = ""
    author: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
