"""
Core data types for the news link resolver.

This module defines the structures that flow through resolution:
- Token: An encoded aggregator link captured from a feed or a page
- FeedItem: A token with the metadata the feed published alongside it
- ResolutionResult: The outcome of escalating one token
- ResolutionBatch: Deduplicated outcomes and counters for a whole batch
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence
from urllib.parse import urlsplit

from .urls import absolutize, source_from_url


AGGREGATOR_HOST = "news.google.com"
LONG_TOKEN_THRESHOLD = 150

# Path prefixes per token family, most specific first
FAMILY_PREFIXES: dict[str, tuple[str, ...]] = {
    "articles": ("/rss/articles/", "/articles/"),
    "read": ("/read/",),
    "stories": ("/rss/stories/", "/stories/"),
}

STRATEGIES = ("codec", "redirect", "browser", "passthrough", "failed")
COUNTER_KEYS = STRATEGIES + ("skipped", "duplicates", "cache_hits")


@dataclass(frozen=True)
class Token:
    """An opaque encoded link issued by the aggregator.

    Attributes:
        raw: The captured link, absolutised against the aggregator base
        family: "articles", "read", "stories", or None for foreign URLs
        origin: "feed" for RSS items, "scraped" for links found on pages
        long_threshold: Length above which offline decoding is unlikely
    """

    raw: str
    family: str | None = None
    origin: str = "scraped"
    long_threshold: int = LONG_TOKEN_THRESHOLD

    @classmethod
    def parse(
        cls,
        value: str,
        origin: str = "scraped",
        long_threshold: int = LONG_TOKEN_THRESHOLD,
    ) -> "Token":
        """Capture a link and classify its family.

        Args:
            value: Absolute or ``./``-relative aggregator link
            origin: Where the link was discovered ("feed" or "scraped")
            long_threshold: Long-token threshold in characters

        Returns:
            An immutable Token
        """
        raw = value.strip()
        if raw.startswith("./") or raw.startswith("/"):
            raw = absolutize(raw)
        return cls(raw=raw, family=classify_family(raw), origin=origin, long_threshold=long_threshold)

    @property
    def length_class(self) -> str:
        return "long" if len(self.raw) > self.long_threshold else "short"

    @property
    def is_long(self) -> bool:
        return self.length_class == "long"

    @property
    def is_story_cluster(self) -> bool:
        return self.family == "stories"

    def short(self, max_chars: int = 80) -> str:
        """Truncated form of the raw value for log lines."""
        if len(self.raw) <= max_chars:
            return self.raw
        return self.raw[:max_chars] + "..."


def classify_family(url: str) -> str | None:
    """Return the token family for an aggregator URL, or None."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if (parts.hostname or "").lower() != AGGREGATOR_HOST:
        return None
    for family, prefixes in FAMILY_PREFIXES.items():
        for prefix in prefixes:
            if parts.path.startswith(prefix) and len(parts.path) > len(prefix):
                return family
    return None


@dataclass(frozen=True)
class FeedItem:
    """A token together with the metadata published next to it.

    Attributes:
        token: The captured aggregator link
        title: Headline as published by the feed or page
        published_at: Publish time, or None when the feed omitted it
        source: Publisher name, or None
        decoded_url: Offline decode result, None when the codec did not match
    """

    token: Token
    title: str
    published_at: datetime | None = None
    source: str | None = None
    decoded_url: str | None = None


@dataclass
class ResolutionResult:
    """Outcome of escalating one token.

    Attributes:
        token: The original token
        resolved_url: Publisher URL, the token itself for passthrough, None when failed
        strategy: One of STRATEGIES
        index: Position of the token in the submitted batch
        resolved_at: UTC timestamp of the outcome
        cached: Whether the outcome came from the resolution cache
    """

    token: Token
    resolved_url: str | None
    strategy: str
    index: int = 0
    resolved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.strategy != "failed" and self.resolved_url is not None


@dataclass
class ResolutionBatch:
    """Deduplicated results of resolving a batch of tokens.

    ``results`` is keyed by input index so callers can re-attach feed
    metadata; ``resolved_urls`` holds every usable URL exactly once.
    """

    tokens: list[Token] = field(default_factory=list)
    results: dict[int, ResolutionResult] = field(default_factory=dict)
    counters: dict[str, int] = field(default_factory=lambda: {key: 0 for key in COUNTER_KEYS})
    _seen: dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def resolved_urls(self) -> list[str]:
        return list(self._seen)

    def add(self, result: ResolutionResult) -> bool:
        """Record a result and update counters.

        Returns:
            True if the result contributed a new URL to the output set
        """
        self.results[result.index] = result
        self.counters[result.strategy] += 1
        if result.cached:
            self.counters["cache_hits"] += 1
        if not result.ok:
            return False
        if result.resolved_url in self._seen:
            self.counters["duplicates"] += 1
            return False
        self._seen[result.resolved_url] = result.index
        return True

    def skip(self) -> None:
        self.counters["skipped"] += 1

    def correlated(self) -> list[tuple[int, ResolutionResult]]:
        """Results in submission order, paired with their input index."""
        return sorted(self.results.items())

    def records(self, items: Sequence[FeedItem] | None = None) -> list[dict[str, Any]]:
        """Build one ``{url, date, title, source}`` record per unique URL.

        Args:
            items: FeedItems in the same order the tokens were submitted;
                   when omitted the metadata fields are left empty. A
                   missing source falls back to the publisher host.

        Returns:
            Records ordered by the index of the first token that produced each URL
        """
        records: list[dict[str, Any]] = []
        for url, index in sorted(self._seen.items(), key=lambda pair: pair[1]):
            item = items[index] if items is not None and index < len(items) else None
            published = item.published_at if item else None
            records.append(
                {
                    "url": url,
                    "date": published.isoformat() if published else None,
                    "title": item.title if item else None,
                    "source": (item.source if item else None) or source_from_url(url),
                }
            )
        return records

    def summary(self) -> dict[str, int]:
        data = dict(self.counters)
        data["total"] = len(self.tokens)
        data["unique_urls"] = len(self._seen)
        return data
