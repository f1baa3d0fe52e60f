"""
Error taxonomy for resolution strategies.

Strategy-level errors are raised inside a strategy and absorbed at its
boundary; only BrowserUnavailable is allowed to abort a batch.
"""

from __future__ import annotations


class ResolverError(Exception):
    """Base class for every error raised by the resolver."""


class NetworkError(ResolverError):
    """Transport-level failure talking to the aggregator."""


class NetworkTimeout(NetworkError):
    """The aggregator did not answer within the configured timeout."""


class MalformedUrl(ResolverError):
    """A token or redirect target could not be turned into a request."""


class ConsentTimeout(ResolverError):
    """The consent interstitial could not be dismissed in time."""


class UnresolvableFamily(ResolverError):
    """The token represents a story cluster, not a single article."""


class BrowserUnavailable(ResolverError):
    """The browser-automation capability could not be started at all."""


class FeedError(ResolverError):
    """The feed representation could not be fetched or parsed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def categorize_error(exc: BaseException) -> str:
    """Map an exception to a short category used in log events.

    Args:
        exc: The exception raised by a strategy

    Returns:
        Error category: "timeout", "consent_timeout", "network_failed",
        "browser_unavailable", "malformed_url", or "unknown"
    """
    if isinstance(exc, ConsentTimeout):
        return "consent_timeout"
    if isinstance(exc, NetworkTimeout):
        return "timeout"
    if isinstance(exc, BrowserUnavailable):
        return "browser_unavailable"
    if isinstance(exc, MalformedUrl):
        return "malformed_url"
    if isinstance(exc, NetworkError):
        return "network_failed"
    text = str(exc).lower()
    if "timeout" in text or "timed out" in text:
        return "timeout"
    return "unknown"
