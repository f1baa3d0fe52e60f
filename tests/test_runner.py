"""Tests for end-to-end runs with faked network strategies."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
from rich.console import Console

from link_resolver.codec import TokenCodec
from link_resolver.config import AppConfig
from link_resolver.core.types import Token
from link_resolver.fetch.feed import FeedExtractor
from link_resolver.orchestrator import BatchOptions, ResolutionOrchestrator
from link_resolver import runner


TECHCRUNCH_LINK = (
    "https://news.google.com/rss/articles/"
    "CBMiSGh0dHBzOi8vdGVjaGNydW5jaC5jb20vMjAyMi8xMC8yNy9uZXcteW9yay1wb3N0LWhhY2tlZC1vZmZlbnNpdmUtdHdlZXRzL9IBAA"
    "?oc=5"
)
OPAQUE_LINK = "https://news.google.com/rss/articles/AU_yqLopaque?oc=5"

RSS = f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Tech</title>
<item><title>Hacked - TechCrunch</title><link>{TECHCRUNCH_LINK}</link>
<pubDate>Thu, 27 Oct 2022 14:05:00 GMT</pubDate><source url="https://techcrunch.com">TechCrunch</source></item>
<item><title>Opaque - Wire</title><link>{OPAQUE_LINK}</link><source url="https://wire.example">Wire</source></item>
</channel></rss>
"""

PAGE = '<html><body><a href="./articles/AU_yqLscraped">Scraped story</a></body></html>'


class FakeRedirect:
    def __init__(self, answers: dict[str, str]):
        self.answers = answers

    async def resolve(self, token: Token) -> str | None:
        return self.answers.get(token.raw)


def _cfg() -> AppConfig:
    cfg = AppConfig()
    cfg.batch.pacing_seconds = 0
    cfg.logging.console = False
    return cfg


def _orchestrator(cfg: AppConfig, answers: dict[str, str]) -> ResolutionOrchestrator:
    return ResolutionOrchestrator(cfg, redirect=FakeRedirect(answers), navigator=None)


def _extractor(cfg: AppConfig, handler) -> FeedExtractor:
    return FeedExtractor(cfg.feed, codec=TokenCodec(), transport=httpx.MockTransport(handler))


def test_run_feed_writes_records(tmp_path):
    cfg = _cfg()
    output = tmp_path / "records.json"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=RSS)

    runner.run_feed(
        "https://news.google.com/topics/CAAq?hl=en-US",
        output,
        cfg,
        options=BatchOptions(enable_browser_fallback=False),
        show_progress=False,
        console=Console(file=None, quiet=True),
        orchestrator=_orchestrator(cfg, {OPAQUE_LINK: "https://wire.example/opaque"}),
        extractor=_extractor(cfg, handler),
    )

    report = json.loads(output.read_text(encoding="utf-8"))
    assert report["summary"]["codec"] == 1
    assert report["summary"]["redirect"] == 1
    assert report["records"] == [
        {
            "url": "https://techcrunch.com/2022/10/27/new-york-post-hacked-offensive-tweets/",
            "date": "2022-10-27T14:05:00+00:00",
            "title": "Hacked",
            "source": "TechCrunch",
        },
        {"url": "https://wire.example/opaque", "date": None, "title": "Opaque", "source": "Wire"},
    ]


def test_run_feed_falls_back_to_page_scrape(tmp_path):
    cfg = _cfg()
    output = tmp_path / "records.json"
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        if "/rss/" in request.url.path:
            return httpx.Response(503)
        return httpx.Response(200, text=PAGE)

    scraped = "https://news.google.com/articles/AU_yqLscraped"
    runner.run_feed(
        "https://news.google.com/topics/CAAq",
        output,
        cfg,
        show_progress=False,
        console=Console(quiet=True),
        orchestrator=_orchestrator(cfg, {scraped: "https://publisher.example/scraped"}),
        extractor=_extractor(cfg, handler),
    )

    assert requested == ["https://news.google.com/rss/topics/CAAq", "https://news.google.com/topics/CAAq"]
    report = json.loads(output.read_text(encoding="utf-8"))
    assert report["records"] == [
        {"url": "https://publisher.example/scraped", "date": None, "title": "Scraped story", "source": "publisher.example"}
    ]


def test_run_tokens_writes_per_token_rows(tmp_path):
    cfg = _cfg()
    output = tmp_path / "resolved.json"
    story = "https://news.google.com/stories/CAAqNggK?hl=en-US"

    runner.run_tokens(
        [TECHCRUNCH_LINK, story, OPAQUE_LINK],
        output,
        cfg,
        options=BatchOptions(enable_browser_fallback=False),
        show_progress=True,
        console=Console(quiet=True),
        orchestrator=_orchestrator(cfg, {}),
    )

    report = json.loads(output.read_text(encoding="utf-8"))
    assert report["summary"]["skipped"] == 1
    assert report["summary"]["failed"] == 1
    assert [row["index"] for row in report["results"]] == [0, 2]
    assert [row["strategy"] for row in report["results"]] == ["codec", "failed"]
    assert report["urls"] == ["https://techcrunch.com/2022/10/27/new-york-post-hacked-offensive-tweets/"]


def test_run_feed_applies_date_window(tmp_path):
    cfg = _cfg()
    output = tmp_path / "records.json"
    redirect = FakeRedirect({OPAQUE_LINK: "https://wire.example/opaque"})

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=RSS)

    runner.run_feed(
        "https://news.google.com/topics/CAAq",
        output,
        cfg,
        options=BatchOptions(enable_browser_fallback=False),
        show_progress=False,
        console=Console(quiet=True),
        orchestrator=ResolutionOrchestrator(cfg, redirect=redirect, navigator=None),
        extractor=_extractor(cfg, handler),
        since=datetime(2022, 10, 27, tzinfo=timezone.utc),
    )

    report = json.loads(output.read_text(encoding="utf-8"))
    # The undated opaque item falls outside any window
    assert report["summary"]["total"] == 1
    assert [record["title"] for record in report["records"]] == ["Hacked"]
