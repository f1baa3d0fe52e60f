"""Tests for tokens and batch bookkeeping."""

from __future__ import annotations

from datetime import datetime, timezone

from link_resolver.core.types import (
    FeedItem,
    ResolutionBatch,
    ResolutionResult,
    Token,
    classify_family,
)


def _result(raw: str, url: str | None, strategy: str, index: int, cached: bool = False) -> ResolutionResult:
    return ResolutionResult(Token.parse(raw), url, strategy, index=index, cached=cached)


def test_relative_links_are_absolutised():
    token = Token.parse("./articles/CBMiABC?hl=en-US")
    assert token.raw == "https://news.google.com/articles/CBMiABC?hl=en-US"
    assert token.family == "articles"
    assert token.origin == "scraped"


def test_classify_family():
    assert classify_family("https://news.google.com/rss/articles/CBMi") == "articles"
    assert classify_family("https://news.google.com/read/CBMi") == "read"
    assert classify_family("https://news.google.com/rss/stories/CAAq") == "stories"
    assert classify_family("https://news.google.com/stories/CAAq") == "stories"
    assert classify_family("https://news.google.com/articles/") is None
    assert classify_family("https://example.com/articles/CBMi") is None


def test_length_class_uses_threshold():
    short = Token.parse("https://news.google.com/rss/articles/CBMi")
    long = Token.parse("https://news.google.com/rss/articles/" + "A" * 200)
    assert short.length_class == "short"
    assert long.is_long
    assert Token.parse(short.raw, long_threshold=10).is_long


def test_token_is_immutable():
    token = Token.parse("https://news.google.com/rss/articles/CBMi")
    try:
        token.raw = "other"  # type: ignore[misc]
    except AttributeError:
        pass
    else:
        raise AssertionError("Token should be frozen")


def test_batch_deduplicates_urls_and_counts_strategies():
    batch = ResolutionBatch(tokens=[Token.parse(f"https://news.google.com/rss/articles/T{i}") for i in range(4)])

    assert batch.add(_result("https://news.google.com/rss/articles/T0", "https://a.com/x", "codec", 0))
    assert not batch.add(_result("https://news.google.com/rss/articles/T1", "https://a.com/x", "redirect", 1))
    assert not batch.add(_result("https://news.google.com/rss/articles/T2", None, "failed", 2))
    assert batch.add(_result("https://news.google.com/rss/articles/T3", "https://b.com/y", "browser", 3, cached=True))
    batch.skip()

    assert batch.resolved_urls == ["https://a.com/x", "https://b.com/y"]
    summary = batch.summary()
    assert summary["codec"] == 1
    assert summary["redirect"] == 1
    assert summary["browser"] == 1
    assert summary["failed"] == 1
    assert summary["duplicates"] == 1
    assert summary["cache_hits"] == 1
    assert summary["skipped"] == 1
    assert summary["total"] == 4
    assert summary["unique_urls"] == 2


def test_records_follow_first_index_and_carry_metadata():
    published = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    items = [
        FeedItem(Token.parse("https://news.google.com/rss/articles/A"), "First", published, "Wire"),
        FeedItem(Token.parse("https://news.google.com/rss/articles/B"), "Second", None, None),
    ]
    batch = ResolutionBatch(tokens=[item.token for item in items])
    # Completion order differs from submission order
    batch.add(_result(items[1].token.raw, "https://b.com/2", "redirect", 1))
    batch.add(_result(items[0].token.raw, "https://a.com/1", "codec", 0))

    records = batch.records(items)
    assert records == [
        {"url": "https://a.com/1", "date": "2024-05-01T12:00:00+00:00", "title": "First", "source": "Wire"},
        {"url": "https://b.com/2", "date": None, "title": "Second", "source": "b.com"},
    ]
    assert [index for index, _ in batch.correlated()] == [0, 1]


def test_passthrough_result_is_ok_and_failed_is_not():
    raw = "https://news.google.com/rss/articles/" + "A" * 200
    assert _result(raw, raw, "passthrough", 0).ok
    assert not _result(raw, None, "failed", 0).ok
