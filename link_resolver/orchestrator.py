"""
Escalation of tokens through the resolution strategies.

Each token is tried against the codec, then the redirect resolver, then the
browser navigator; the first strategy that produces an off-aggregator URL
wins. Long tokens nobody could resolve are passed through unchanged, short
ones are marked failed. Story clusters are skipped before any strategy runs.

Tokens run as asyncio tasks behind a token gate; browser work runs behind a
separate, usually serial, gate with a periodic cooldown.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Callable, Sequence

from .browser.base import BrowserNavigator
from .codec import TokenCodec
from .config import AppConfig
from .core.cache import ResolutionCache
from .core.errors import BrowserUnavailable, UnresolvableFamily, categorize_error
from .core.types import FeedItem, ResolutionBatch, ResolutionResult, Token
from .core.urls import is_off_aggregator
from .fetch.redirect import RedirectResolver
from .utils.logging import log_event


ResultCallback = Callable[[ResolutionResult | None], None]


@dataclass
class BatchOptions:
    """Per-batch knobs.

    Attributes:
        concurrency: Tokens escalated at the same time
        timeout_ms: Browser timeout for scraped tokens
        feed_timeout_ms: Browser timeout for feed tokens
        enable_browser_fallback: Stop after the redirect resolver when False
    """

    concurrency: int = 1
    timeout_ms: int = 30000
    feed_timeout_ms: int = 45000
    enable_browser_fallback: bool = True

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "BatchOptions":
        return cls(
            concurrency=cfg.batch.concurrency,
            timeout_ms=cfg.browser.timeout_ms,
            feed_timeout_ms=cfg.browser.feed_timeout_ms,
            enable_browser_fallback=cfg.browser.enabled,
        )

    def browser_timeout_for(self, token: Token) -> int:
        return self.feed_timeout_ms if token.origin == "feed" else self.timeout_ms


class ResolutionOrchestrator:
    """Runs the Codec -> Redirect -> Browser escalation over batches."""

    def __init__(
        self,
        cfg: AppConfig,
        codec: TokenCodec | None = None,
        redirect: RedirectResolver | None = None,
        navigator: BrowserNavigator | None = None,
        cache: ResolutionCache | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg
        self.codec = codec or TokenCodec()
        self.redirect = redirect or RedirectResolver(cfg.redirect, logger)
        self.navigator = navigator
        self.cache = cache
        self.logger = logger
        self._browser_invocations = 0

    async def resolve_batch(
        self,
        tokens: Sequence[Token | str],
        options: BatchOptions | None = None,
        on_result: ResultCallback | None = None,
    ) -> ResolutionBatch:
        """Resolve a batch of tokens.

        Args:
            tokens: Tokens, or raw links that are parsed as scraped tokens
            options: Batch options; defaults derived from config
            on_result: Called once per token (with None for skipped tokens)

        Returns:
            ResolutionBatch with deduplicated URLs and counters

        Raises:
            BrowserUnavailable: If the browser capability failed to start;
                                the remaining tokens are cancelled
        """
        options = options or BatchOptions.from_config(self.cfg)
        parsed = [self._as_token(token) for token in tokens]
        batch = ResolutionBatch(tokens=parsed)

        token_gate = asyncio.Semaphore(max(1, options.concurrency))
        browser_gate = asyncio.Semaphore(max(1, self.cfg.browser.concurrency))
        batch_lock = asyncio.Lock()

        log_event(
            self.logger,
            "Batch start",
            event="batch_start",
            total=len(parsed),
            concurrency=options.concurrency,
            browser=options.enable_browser_fallback and self.navigator is not None,
        )

        async def _run(index: int, token: Token) -> None:
            async with token_gate:
                result, used_network = await self._resolve_one(index, token, options, browser_gate)
                async with batch_lock:
                    if result is None:
                        batch.skip()
                    else:
                        batch.add(result)
                if on_result is not None:
                    on_result(result)
                if used_network and self.cfg.batch.pacing_seconds > 0:
                    await asyncio.sleep(self.cfg.batch.pacing_seconds)

        tasks = [asyncio.create_task(_run(index, token)) for index, token in enumerate(parsed)]
        try:
            await asyncio.gather(*tasks)
        except BrowserUnavailable as exc:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            log_event(self.logger, "Batch aborted", level=logging.ERROR, event="batch_aborted", error=str(exc))
            raise

        log_event(self.logger, "Batch complete", event="batch_complete", **batch.summary())
        return batch

    async def resolve_items(
        self,
        items: Sequence[FeedItem],
        options: BatchOptions | None = None,
        on_result: ResultCallback | None = None,
    ) -> ResolutionBatch:
        """Resolve FeedItems, keeping result indexes aligned with ``items``."""
        return await self.resolve_batch([item.token for item in items], options, on_result)

    def resolve_batch_sync(
        self,
        tokens: Sequence[Token | str],
        options: BatchOptions | None = None,
        on_result: ResultCallback | None = None,
    ) -> ResolutionBatch:
        return asyncio.run(self.resolve_batch(tokens, options, on_result))

    async def _resolve_one(
        self,
        index: int,
        token: Token,
        options: BatchOptions,
        browser_gate: asyncio.Semaphore,
    ) -> tuple[ResolutionResult | None, bool]:
        """Escalate one token. Returns (result or None if skipped, used_network)."""
        if token.is_story_cluster:
            exc = UnresolvableFamily("story cluster")
            log_event(self.logger, "Story cluster skipped", level=logging.DEBUG, event="story_skipped", token=token.short(), reason=str(exc))
            return None, False

        if self.cache is not None:
            entry = self.cache.get(token.raw)
            if entry is not None:
                log_event(self.logger, "Cache hit", level=logging.DEBUG, event="cache_hit", token=token.short(), url=entry.url)
                return ResolutionResult(token, entry.url, entry.strategy, index=index, cached=True), False

        url = self.codec.decode(token)
        if url:
            return self._hit(token, url, "codec", index), False

        url = await self._try_redirect(token)
        if url:
            return self._hit(token, url, "redirect", index), True

        if options.enable_browser_fallback and self.navigator is not None:
            url = await self._try_browser(token, options.browser_timeout_for(token), browser_gate)
            if url:
                return self._hit(token, url, "browser", index), True

        if token.is_long:
            log_event(self.logger, "Passing token through", level=logging.DEBUG, event="passthrough", token=token.short())
            return ResolutionResult(token, token.raw, "passthrough", index=index), True

        log_event(self.logger, "Token unresolved", level=logging.WARNING, event="resolve_failed", token=token.short())
        return ResolutionResult(token, None, "failed", index=index), True

    async def _try_redirect(self, token: Token) -> str | None:
        try:
            return await self.redirect.resolve(token)
        except Exception as exc:  # noqa: BLE001
            log_event(
                self.logger,
                "Redirect strategy error",
                level=logging.DEBUG,
                event="redirect_error",
                token=token.short(),
                error_category=categorize_error(exc),
                error=f"{type(exc).__name__}: {exc}",
            )
            return None

    async def _try_browser(self, token: Token, timeout_ms: int, browser_gate: asyncio.Semaphore) -> str | None:
        async with browser_gate:
            try:
                urls = await self.navigator.resolve_via_browser(token, timeout_ms)
            except BrowserUnavailable:
                raise
            except Exception as exc:  # noqa: BLE001
                log_event(
                    self.logger,
                    "Browser strategy error",
                    level=logging.DEBUG,
                    event="browser_error",
                    token=token.short(),
                    error_category=categorize_error(exc),
                    error=f"{type(exc).__name__}: {exc}",
                )
                urls = []
            finally:
                self._browser_invocations += 1
            await self._cooldown_if_due()

        for url in urls:
            if is_off_aggregator(url):
                return url
        return None

    async def _cooldown_if_due(self) -> None:
        every = self.cfg.browser.cooldown_every
        if every <= 0 or self._browser_invocations % every:
            return
        log_event(
            self.logger,
            "Browser cooldown",
            event="browser_cooldown",
            invocations=self._browser_invocations,
            seconds=self.cfg.browser.cooldown_seconds,
        )
        if self.cfg.browser.cooldown_seconds > 0:
            await asyncio.sleep(self.cfg.browser.cooldown_seconds)

    def _hit(self, token: Token, url: str, strategy: str, index: int) -> ResolutionResult:
        log_event(self.logger, f"Resolved via {strategy}", level=logging.DEBUG, event=f"{strategy}_hit", token=token.short(), url=url)
        if self.cache is not None:
            self.cache.put(token.raw, url, strategy)
        return ResolutionResult(token, url, strategy, index=index)

    def _as_token(self, token: Token | str) -> Token:
        if isinstance(token, Token):
            return token
        return Token.parse(token, origin="scraped", long_threshold=self.cfg.codec.long_token_threshold)
