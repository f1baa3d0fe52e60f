"""
Headless Chromium navigator built on Playwright.

Each call starts its own browser process and isolated context, walks the
consent interstitial if one is shown, and reads the address the page settles
on, or harvests the page's outbound article links when it never leaves the
aggregator. Playwright is an optional capability: when it is not importable,
``create_navigator`` returns None and resolution continues without it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from urllib.parse import urlsplit

from ..config import BrowserConfig
from ..core.errors import BrowserUnavailable, ConsentTimeout, categorize_error
from ..core.types import Token
from ..core.urls import is_aggregator_url, is_off_aggregator, strip_tracking_params
from ..utils.logging import log_event
from .base import BrowserNavigator

try:
    from playwright.async_api import async_playwright
except Exception:  # noqa: BLE001
    async_playwright = None


LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
)

CONSENT_SELECTOR = ", ".join(
    (
        'button[aria-label="Accept all"]',
        'form[action*="consent.google"] button',
        'button:has-text("Accept all")',
        'button:has-text("I agree")',
    )
)

# Outbound anchors on these hosts or paths are never articles
NON_PUBLISHER_HOSTS = (
    "youtube.com",
    "facebook.com",
    "twitter.com",
    "x.com",
    "instagram.com",
    "linkedin.com",
    "googletagmanager.com",
)
NON_ARTICLE_PATHS = ("/privacy", "/terms", "/contact", "/about")

# Allowed moves of the per-invocation state machine
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "navigating": ("consent_presented", "settled", "timed_out"),
    "consent_presented": ("consent_accepted", "timed_out"),
    "consent_accepted": ("settled", "timed_out"),
    "settled": (),
    "timed_out": (),
}


@dataclass
class ConsentSession:
    """State of one browser invocation. Never reused across tokens."""

    state: str = "navigating"
    history: list[str] = field(default_factory=lambda: ["navigating"])

    def advance(self, state: str) -> None:
        if state not in TRANSITIONS[self.state]:
            raise ValueError(f"Invalid consent transition: {self.state} -> {state}")
        self.state = state
        self.history.append(state)

    @property
    def finished(self) -> bool:
        return not TRANSITIONS[self.state]


class PlaywrightNavigator(BrowserNavigator):
    """Resolves tokens by loading them in a fresh headless Chromium.

    Attributes:
        last_session: Consent session of the most recent call, for diagnostics
                      only. Concurrent calls overwrite it, so never read it to
                      decide anything about a particular token.
    """

    def __init__(self, cfg: BrowserConfig, logger: logging.Logger | None = None):
        self.cfg = cfg
        self.logger = logger
        self.last_session: ConsentSession | None = None

    async def resolve_via_browser(self, token: Token, timeout_ms: int) -> list[str]:
        session = ConsentSession()
        self.last_session = session
        try:
            return await asyncio.wait_for(self._navigate(token, timeout_ms, session), timeout=timeout_ms / 1000)
        except BrowserUnavailable:
            raise
        except asyncio.TimeoutError:
            self._time_out(session)
            log_event(
                self.logger,
                "Browser hard timeout",
                level=logging.WARNING,
                event="browser_timeout",
                token=token.short(),
                timeout_ms=timeout_ms,
                states=session.history,
            )
            return []
        except Exception as exc:  # noqa: BLE001
            category = categorize_error(exc)
            if category in ("timeout", "consent_timeout"):
                self._time_out(session)
            log_event(
                self.logger,
                "Browser navigation failed",
                level=logging.WARNING,
                event="browser_failed",
                token=token.short(),
                error=f"{type(exc).__name__}: {exc}",
                error_category=category,
                states=session.history,
            )
            return []

    async def _navigate(self, token: Token, timeout_ms: int, session: ConsentSession) -> list[str]:
        try:
            playwright = await async_playwright().start()
        except Exception as exc:  # noqa: BLE001
            raise BrowserUnavailable(f"Playwright could not be started: {exc}") from exc

        browser = None
        context = None
        try:
            try:
                browser = await playwright.chromium.launch(headless=self.cfg.headless, args=list(LAUNCH_ARGS))
            except Exception as exc:  # noqa: BLE001
                raise BrowserUnavailable(f"Chromium could not be launched: {exc}") from exc

            context = await browser.new_context(user_agent=self.cfg.user_agent, locale=self.cfg.locale)
            page = await context.new_page()
            await page.goto(token.raw, wait_until="domcontentloaded", timeout=timeout_ms)

            if is_aggregator_url(page.url):
                await self._accept_consent(page, session, timeout_ms)
            if is_aggregator_url(page.url):
                try:
                    await page.wait_for_url(
                        lambda url: not is_aggregator_url(url),
                        timeout=min(self.cfg.settle_ms, timeout_ms),
                    )
                except Exception:  # noqa: BLE001
                    # Still on the aggregator: fall back to the page's outbound article links
                    links = await self._harvest(page, token)
                    if not links:
                        raise
                    session.advance("settled")
                    return links

            session.advance("settled")
            return _settled_urls(page.url)
        finally:
            try:
                if context is not None:
                    await self._close("context", context.close)
            finally:
                try:
                    if browser is not None:
                        await self._close("browser", browser.close)
                finally:
                    await self._close("playwright", playwright.stop)

    async def _harvest(self, page, token: Token) -> list[str]:
        hrefs = await page.eval_on_selector_all("a[href]", "els => els.map(e => e.href)")
        links = article_links(hrefs)
        log_event(
            self.logger,
            "Harvested outbound links",
            level=logging.DEBUG,
            event="browser_harvest",
            token=token.short(),
            anchors=len(hrefs),
            kept=len(links),
        )
        return links

    async def _close(self, target: str, close) -> None:
        try:
            await close()
        except Exception as exc:  # noqa: BLE001
            log_event(
                self.logger,
                f"Failed to close {target}",
                level=logging.WARNING,
                event="browser_close_failed",
                target=target,
                error=f"{type(exc).__name__}: {exc}",
            )

    async def _accept_consent(self, page, session: ConsentSession, timeout_ms: int) -> None:
        try:
            control = await page.wait_for_selector(CONSENT_SELECTOR, timeout=self.cfg.consent_poll_ms, state="visible")
        except Exception:  # noqa: BLE001
            # No consent control within the poll window
            return
        if control is None:
            return

        session.advance("consent_presented")
        log_event(self.logger, "Consent interstitial shown", level=logging.DEBUG, event="consent_presented", url=page.url)
        try:
            async with page.expect_navigation(wait_until="domcontentloaded", timeout=timeout_ms):
                await control.click()
        except Exception as exc:  # noqa: BLE001
            raise ConsentTimeout(f"Consent was not dismissed: {exc}") from exc
        session.advance("consent_accepted")

    @staticmethod
    def _time_out(session: ConsentSession) -> None:
        if "timed_out" in TRANSITIONS[session.state]:
            session.advance("timed_out")


def _settled_urls(url: str) -> list[str]:
    if not is_off_aggregator(url):
        return []
    return [strip_tracking_params(url)]


def article_links(hrefs: list[str]) -> list[str]:
    """Reduce anchors harvested from an aggregator page to publisher article links.

    Drops aggregator, social and tracker hosts, site furniture such as
    privacy or about pages, and bare home pages; strips tracking
    parameters and keeps the first occurrence of each link.
    """
    links: list[str] = []
    for href in hrefs:
        if not href:
            continue
        try:
            parts = urlsplit(href)
        except ValueError:
            continue
        if not is_off_aggregator(href):
            continue
        host = (parts.hostname or "").lower()
        if any(host == blocked or host.endswith("." + blocked) for blocked in NON_PUBLISHER_HOSTS):
            continue
        path = parts.path.lower()
        if path in ("", "/") or any(marker in path for marker in NON_ARTICLE_PATHS):
            continue
        url = strip_tracking_params(href)
        if url not in links:
            links.append(url)
    return links


def create_navigator(cfg: BrowserConfig, logger: logging.Logger | None = None) -> BrowserNavigator | None:
    """Return a Playwright navigator, or None when the capability is off or missing."""
    if not cfg.enabled:
        return None
    if async_playwright is None:
        log_event(logger, "Playwright not installed, browser fallback disabled", level=logging.WARNING, event="browser_missing")
        return None
    return PlaywrightNavigator(cfg, logger)
