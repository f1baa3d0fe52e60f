"""
URL helpers shared by every resolution strategy.

This module knows which hosts belong to the aggregator's domain family,
which ones are AMP mirrors, and which query parameters are tracking noise.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit


AGGREGATOR_BASE = "https://news.google.com/"

# google.com, google.ie, google.co.uk and their subdomains (consent.google.com, ...)
_GOOGLE_HOST_RE = re.compile(r"(^|\.)google(\.[a-z]{2,3}){1,2}$")
_AGGREGATOR_SUFFIXES = (
    "googlenews.com",
    "googleusercontent.com",
    "gstatic.com",
    "googleapis.com",
)

_AMP_MIRROR_MARKERS = ("google.com/amp/", "cdn.ampproject.org/")

TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAM_NAMES = frozenset(
    {
        "fbclid",
        "gclid",
        "dclid",
        "gbraid",
        "wbraid",
        "igshid",
        "mc_cid",
        "mc_eid",
        "mkt_tok",
        "ref_src",
        "spm",
        "yclid",
        "ocid",
        "guccounter",
        "guce_referrer",
        "guce_referrer_sig",
    }
)


def host_of(url: str) -> str:
    """Return the lowercase hostname of a URL, or an empty string."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_aggregator_host(host: str) -> bool:
    """Check whether a hostname belongs to the aggregator's domain family."""
    host = host.lower().rstrip(".")
    if not host:
        return False
    if _GOOGLE_HOST_RE.search(host):
        return True
    return any(host == suffix or host.endswith("." + suffix) for suffix in _AGGREGATOR_SUFFIXES)


def is_aggregator_url(url: str) -> bool:
    return is_aggregator_host(host_of(url))


def is_off_aggregator(url: str) -> bool:
    """True for an absolute http(s) URL whose host is outside the aggregator."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return False
    return not is_aggregator_host(parts.hostname)


def source_from_url(url: str) -> str | None:
    """Name a publisher by its host, minus a leading ``www.``; None on the aggregator."""
    host = host_of(url)
    if not host or is_aggregator_host(host):
        return None
    return host[4:] if host.startswith("www.") else host


def is_amp_mirror(url: str) -> bool:
    lowered = url.lower()
    return any(marker in lowered for marker in _AMP_MIRROR_MARKERS)


def strip_tracking_params(url: str) -> str:
    """Remove tracking query parameters, keeping everything else in order.

    Args:
        url: Absolute URL possibly carrying utm_* and click identifiers

    Returns:
        The same URL without tracking parameters (fragment preserved)
    """
    parts = urlsplit(url)
    if not parts.query:
        return url
    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    ]
    return urlunsplit(parts._replace(query=urlencode(kept, doseq=True)))


def absolutize(href: str, base_url: str = AGGREGATOR_BASE) -> str:
    """Resolve relative aggregator links such as ``./articles/...``."""
    return urljoin(base_url, href)


def _is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    if lowered in TRACKING_PARAM_NAMES:
        return True
    return lowered.startswith(TRACKING_PARAM_PREFIXES)
