"""
Core domain models and helpers.

This package contains data types, the error taxonomy, URL helpers and the
resolution cache. Nothing here performs I/O.
"""

from .cache import ResolutionCache
from .errors import (
    BrowserUnavailable,
    ConsentTimeout,
    FeedError,
    NetworkError,
    NetworkTimeout,
    ResolverError,
    UnresolvableFamily,
)
from .types import FeedItem, ResolutionBatch, ResolutionResult, Token

__all__ = [
    "Token",
    "FeedItem",
    "ResolutionResult",
    "ResolutionBatch",
    "ResolutionCache",
    "ResolverError",
    "NetworkError",
    "NetworkTimeout",
    "ConsentTimeout",
    "UnresolvableFamily",
    "BrowserUnavailable",
    "FeedError",
]
