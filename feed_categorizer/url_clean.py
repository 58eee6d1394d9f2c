"""Link cleanup: tracking-parameter removal and publisher campaign tagging."""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset(
    {
        # UTM family
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "utm_id",
        "utm_name",
        "utm_reader",
        "utm_referrer",
        "utm_brand",
        "utm_social",
        "utm_social-type",
        # ad / social click ids
        "fbclid",
        "gclid",
        "gclsrc",
        "dclid",
        "msclkid",
        "twclid",
        "ttclid",
        "li_fat_id",
        "igshid",
        "yclid",
        # mail platforms
        "mc_cid",
        "mc_eid",
        "_hsenc",
        "_hsmi",
        "mkt_tok",
        "vero_id",
        "vero_conv",
        "ck_subscriber_id",
        "oly_enc_id",
        "oly_anon_id",
        # referral markers
        "ref",
        "ref_src",
        "ref_url",
    }
)


def strip_tracking_params(url: str) -> str:
    """
    Remove known tracking query parameters.

    Other parameters keep their order; the fragment is preserved. A URL whose query has
    nothing to strip (or that cannot be parsed) is returned unchanged.
    """
    if not url:
        return url
    try:
        parts = urlsplit(url)
        pairs = parse_qsl(parts.query, keep_blank_values=True)
    except ValueError:
        return url

    kept = [(k, v) for k, v in pairs if k.lower() not in TRACKING_PARAMS]
    if len(kept) == len(pairs):
        return url

    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))


_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")


def campaign_value(now: datetime | None = None) -> str:
    """edm<mon><yy>, e.g. edmoct26."""
    ts = now or datetime.now(timezone.utc)
    return f"edm{_MONTHS[ts.month - 1]}{ts.year % 100:02d}"


def _host_matches(host: str, domain: str) -> bool:
    h = (host or "").lower().split(":", 1)[0]
    return h == domain or h.endswith("." + domain)


def add_campaign_param(
    url: str,
    *,
    domain: str,
    param: str,
    now: datetime | None = None,
) -> str:
    """Tag links on the campaign publisher's domain; existing values of `param` are replaced."""
    if not url or not domain or not param:
        return url
    try:
        parts = urlsplit(url)
        if not _host_matches(parts.netloc, domain):
            return url
        pairs = parse_qsl(parts.query, keep_blank_values=True)
    except ValueError:
        return url

    pairs = [(k, v) for k, v in pairs if k != param]
    pairs.append((param, campaign_value(now)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(pairs), parts.fragment))


def clean_link(
    url: str,
    *,
    campaign_domain: str = "",
    campaign_param: str = "",
    now: datetime | None = None,
) -> str:
    value = (url or "").strip()
    value = strip_tracking_params(value)
    return add_campaign_param(value, domain=campaign_domain, param=campaign_param, now=now)
