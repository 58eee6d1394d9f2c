from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping
from xml.etree.ElementTree import Element

from dateutil import parser as dtparser

DESCRIPTION_LIMIT = 200
MAX_AUTHOR_CHARS = 100
UNKNOWN_AUTHOR = "unknown"

_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&nbsp;", " "),
)

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_EPOCH_RE = re.compile(r"^\d+$")
_TZ_SUFFIX_RE = re.compile(r"(?:Z|[+-]\d{2}:?\d{2}|\b(?:UTC|GMT|UT|[ECMP][SD]T))\s*$", re.IGNORECASE)

# North American abbreviations still common in RSS pubDate values.
_TZINFOS = {
    "EST": -5 * 3600,
    "EDT": -4 * 3600,
    "CST": -6 * 3600,
    "CDT": -5 * 3600,
    "MST": -7 * 3600,
    "MDT": -6 * 3600,
    "PST": -8 * 3600,
    "PDT": -7 * 3600,
}


def coerce_text(value: Any) -> str:
    """
    Best-effort conversion of a parsed node into plain text.

    Handles strings, ElementTree elements (mixed/xhtml content), and mapping-shaped
    text nodes ({"#text": ...} or {"_": ...}).
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Element):
        return "".join(value.itertext())
    if isinstance(value, Mapping):
        for key in ("#text", "_", "text"):
            inner = value.get(key)
            if isinstance(inner, str):
                return inner
        return ""
    return str(value)


def decode_entities(text: str) -> str:
    out = text
    for entity, char in _ENTITIES:
        out = out.replace(entity, char)
    return out


def strip_html(value: Any, *, limit: int = DESCRIPTION_LIMIT) -> str:
    text = coerce_text(value)
    if not text:
        return ""

    decoded = decode_entities(text)
    decoded = _SCRIPT_RE.sub("", decoded)
    decoded = _STYLE_RE.sub("", decoded)
    decoded = _TAG_RE.sub("", decoded)
    decoded = _WS_RE.sub(" ", decoded).strip()

    if limit > 0:
        return decoded[:limit]
    return decoded


def clean_author(raw: Any, *, feed_title: str = "") -> str:
    """Trim an RSS/Atom author and replace platform noise with "unknown"."""
    if not isinstance(raw, str):
        return UNKNOWN_AUTHOR

    author = raw.strip()
    if not author:
        return UNKNOWN_AUTHOR
    if "blurblog" in author.lower():
        return UNKNOWN_AUTHOR
    if "[object object]" in author.lower():
        return UNKNOWN_AUTHOR
    if feed_title and author == feed_title.strip():
        return UNKNOWN_AUTHOR
    if len(author) > MAX_AUTHOR_CHARS:
        return UNKNOWN_AUTHOR
    return author


def format_authors(raw: Any) -> str:
    """
    Format a comma-separated author list.

    "A" -> "A", "A, B" -> "A & B", "A, B, C" -> "A, B & C", empty -> "unknown".
    """
    if not isinstance(raw, str):
        return UNKNOWN_AUTHOR

    names = [part.strip() for part in raw.split(",")]
    names = [n for n in names if n]

    if not names:
        return UNKNOWN_AUTHOR
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + " & " + names[-1]


def _has_tz_suffix(text: str) -> bool:
    return bool(_TZ_SUFFIX_RE.search(text))


def normalize_timestamp(raw: Any) -> str:
    """
    Render a feed timestamp so that it always denotes a single UTC-comparable instant.

    - all-digit values are Unix epoch seconds -> ISO-8601 UTC
    - values without a zone suffix are UTC -> ISO-8601 with +00:00
    - zoned values are returned unchanged
    Unparseable values are returned stripped but otherwise untouched.
    """
    if raw is None:
        return ""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        raw = str(int(raw))
    if not isinstance(raw, str):
        return ""

    text = raw.strip()
    if not text:
        return ""

    if _EPOCH_RE.fullmatch(text):
        try:
            return datetime.fromtimestamp(int(text), tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return text

    if _has_tz_suffix(text):
        return text

    try:
        parsed = dtparser.parse(text, tzinfos=_TZINFOS)
    except (ValueError, OverflowError):
        return text
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.isoformat()


def parse_instant(raw: Any) -> datetime | None:
    """Parse a timestamp string into an aware UTC datetime; naive values are UTC."""
    if isinstance(raw, datetime):
        parsed = raw
    else:
        if not isinstance(raw, str):
            return None
        text = raw.strip()
        if not text:
            return None
        if _EPOCH_RE.fullmatch(text):
            try:
                return datetime.fromtimestamp(int(text), tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
        try:
            parsed = dtparser.parse(text, tzinfos=_TZINFOS)
        except (ValueError, OverflowError):
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Offsets that push the instant past year 1 or 9999.
        return None
