"""
News link resolver.

Turns the encoded article links of a news aggregator into the publisher
URLs they point at, escalating from offline decoding to redirect following
to a headless browser.
"""

from .codec import Decoded, DecodeMismatch, TokenCodec
from .config import AppConfig, load_config
from .core.cache import ResolutionCache
from .core.types import FeedItem, ResolutionBatch, ResolutionResult, Token
from .orchestrator import BatchOptions, ResolutionOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "BatchOptions",
    "Decoded",
    "DecodeMismatch",
    "FeedItem",
    "ResolutionBatch",
    "ResolutionCache",
    "ResolutionOrchestrator",
    "ResolutionResult",
    "Token",
    "TokenCodec",
    "load_config",
]
