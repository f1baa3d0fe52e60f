"""
Network-bound discovery and resolution.

This package contains the feed extractor and the redirect resolver, both
built on httpx.
"""

from .feed import FeedExtractor, feed_representation_url, normalize_feed_url
from .redirect import RedirectResolver, RedirectResult

__all__ = [
    "FeedExtractor",
    "feed_representation_url",
    "normalize_feed_url",
    "RedirectResolver",
    "RedirectResult",
]
