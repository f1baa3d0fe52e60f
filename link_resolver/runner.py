"""
End-to-end runs for the command line.

This module coordinates the workflow:
1. Discover tokens (feed extraction, HTML scrape fallback, or a given list)
2. Escalate every token through the orchestrator
3. Write the JSON report next to the run log
4. Print a per-strategy summary

Supports both progress bar and quiet modes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from .browser.navigator import create_navigator
from .codec import TokenCodec
from .config import AppConfig
from .core.cache import ResolutionCache
from .core.errors import FeedError
from .core.types import FeedItem, ResolutionBatch, Token
from .fetch.feed import FeedExtractor, filter_by_date, previous_midnight
from .fetch.redirect import RedirectResolver
from .orchestrator import BatchOptions, ResolutionOrchestrator
from .utils.logging import log_event, setup_logging


def build_orchestrator(
    cfg: AppConfig,
    logger: logging.Logger | None = None,
    cache: ResolutionCache | None = None,
) -> ResolutionOrchestrator:
    """Wire the strategies described by the configuration."""
    if cache is None and cfg.cache.enabled:
        cache = ResolutionCache(ttl_seconds=cfg.cache.ttl_seconds)
    return ResolutionOrchestrator(
        cfg,
        codec=TokenCodec(),
        redirect=RedirectResolver(cfg.redirect, logger),
        navigator=create_navigator(cfg.browser, logger),
        cache=cache,
        logger=logger,
    )


def run_tokens(
    tokens: Sequence[str],
    output_path: Path,
    cfg: AppConfig,
    options: BatchOptions | None = None,
    show_progress: bool = True,
    console: Console | None = None,
    orchestrator: ResolutionOrchestrator | None = None,
) -> Path:
    """Resolve a list of raw links and write a per-token JSON report.

    Args:
        tokens: Raw aggregator links
        output_path: JSON file to write
        cfg: Application configuration
        options: Batch options; derived from cfg when omitted
        show_progress: Whether to display a progress bar
        console: Rich console for output (creates default if None)
        orchestrator: Pre-built orchestrator, mainly for tests

    Returns:
        Path to the written report
    """
    console = console or Console()
    logger = setup_logging(cfg.logging, output_path.parent)
    orchestrator = orchestrator or build_orchestrator(cfg, logger)

    parsed = [Token.parse(raw, origin="scraped", long_threshold=cfg.codec.long_token_threshold) for raw in tokens]
    log_event(logger, "Run start", event="run_start", mode="tokens", total=len(parsed), output=str(output_path))

    batch = _resolve_with_progress(orchestrator, parsed, options, show_progress, console)
    report = {
        "summary": batch.summary(),
        "urls": batch.resolved_urls,
        "results": [_result_row(index, result) for index, result in batch.correlated()],
    }
    _write_json(output_path, report)
    _render_batch_stats(batch, console)
    log_event(logger, "Run complete", event="run_complete", output=str(output_path))
    return output_path


def run_feed(
    feed_url: str,
    output_path: Path,
    cfg: AppConfig,
    options: BatchOptions | None = None,
    show_progress: bool = True,
    console: Console | None = None,
    orchestrator: ResolutionOrchestrator | None = None,
    extractor: FeedExtractor | None = None,
    since: datetime | None = None,
) -> Path:
    """Discover a feed's articles, resolve them and write their records.

    The RSS representation is tried first; when it fails or is empty the
    HTML page is scraped for article links instead. With ``since`` set, or
    ``feed.since_previous_midnight`` enabled, only items published inside
    the window are resolved.

    Returns:
        Path to the written records file

    Raises:
        FeedError: If neither the feed nor the page yielded any link
    """
    console = console or Console()
    logger = setup_logging(cfg.logging, output_path.parent)
    orchestrator = orchestrator or build_orchestrator(cfg, logger)
    extractor = extractor or FeedExtractor(
        cfg.feed,
        codec=orchestrator.codec,
        logger=logger,
        long_token_threshold=cfg.codec.long_token_threshold,
    )

    log_event(logger, "Run start", event="run_start", mode="feed", url=feed_url, output=str(output_path))
    items = asyncio.run(_discover(extractor, feed_url, logger))
    if since is None and cfg.feed.since_previous_midnight:
        since = previous_midnight()
    if since is not None:
        discovered = len(items)
        items = filter_by_date(items, since)
        log_event(
            logger,
            "Items filtered by date",
            event="date_filtered",
            since=since.isoformat(),
            kept=len(items),
            total=discovered,
        )
    console.print(f"Discovered {len(items)} links ({sum(1 for item in items if item.decoded_url)} decoded offline)")

    batch = _resolve_with_progress(orchestrator, [item.token for item in items], options, show_progress, console)
    report = {
        "feed": feed_url,
        "summary": batch.summary(),
        "records": batch.records(items),
    }
    _write_json(output_path, report)
    _render_batch_stats(batch, console)
    log_event(logger, "Run complete", event="run_complete", output=str(output_path), records=len(report["records"]))
    return output_path


async def _discover(extractor: FeedExtractor, feed_url: str, logger) -> list[FeedItem]:
    try:
        items = await extractor.extract(feed_url)
    except FeedError as exc:
        log_event(
            logger,
            "Feed unavailable, scraping page",
            level=logging.WARNING,
            event="feed_fallback",
            url=feed_url,
            error=str(exc),
            status_code=exc.status_code,
        )
        items = []
    if items:
        return items
    return await extractor.scrape(_page_url(feed_url))


def _page_url(feed_url: str) -> str:
    return feed_url.replace("news.google.com/rss/", "news.google.com/", 1)


def _resolve_with_progress(
    orchestrator: ResolutionOrchestrator,
    tokens: list[Token],
    options: BatchOptions | None,
    show_progress: bool,
    console: Console,
) -> ResolutionBatch:
    # Quiet mode is preferred in automation logs
    if not show_progress:
        return orchestrator.resolve_batch_sync(tokens, options)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeRemainingColumn(),
        console=console,
    )
    with progress:
        task = progress.add_task("Resolve", total=len(tokens))
        return orchestrator.resolve_batch_sync(
            tokens,
            options,
            on_result=lambda _result: progress.advance(task, 1),
        )


def _result_row(index: int, result) -> dict[str, Any]:
    return {
        "index": index,
        "token": result.token.raw,
        "url": result.resolved_url,
        "strategy": result.strategy,
        "cached": result.cached,
        "resolved_at": result.resolved_at.isoformat(),
    }


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def _render_batch_stats(batch: ResolutionBatch, console: Console) -> None:
    """Print the per-strategy counters of a finished batch."""
    summary = batch.summary()
    console.print(
        "[bold]Resolve summary[/bold]: "
        f"total={summary['total']}, unique={summary['unique_urls']}, "
        f"codec={summary['codec']}, redirect={summary['redirect']}, browser={summary['browser']}, "
        f"passthrough={summary['passthrough']}, failed={summary['failed']}, "
        f"skipped={summary['skipped']}, duplicates={summary['duplicates']}, "
        f"cache_hits={summary['cache_hits']}"
    )
