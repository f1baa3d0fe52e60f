"""
Feed discovery for aggregator topics and searches.

The extractor turns a topic or search page address into its RSS
representation, parses the feed with feedparser and yields one FeedItem per
entry. Every token is offered to the codec as it is read; the item is
forwarded whether or not the decode succeeded. When the RSS representation
is unavailable, ``scrape`` collects article links from the HTML page itself.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup
import feedparser
import httpx

from ..codec import TokenCodec
from ..config import FeedConfig
from ..core.errors import FeedError
from ..core.types import LONG_TOKEN_THRESHOLD, FeedItem, Token
from ..core.urls import AGGREGATOR_BASE, absolutize
from ..utils.logging import log_event


LOCALE_PARAMS = ("hl", "gl", "ceid")
ARTICLE_LINK_SELECTOR = 'a[href^="./articles/"], a[href^="./stories/"], a[href^="./read/"]'


def feed_representation_url(url: str) -> str:
    """Map a topic/search page address to its RSS representation.

    Examples:
        >>> feed_representation_url("https://news.google.com/topics/CAAq?hl=en-US")
        'https://news.google.com/rss/topics/CAAq?hl=en-US'
    """
    if "/rss/" in urlsplit(url).path:
        return url
    if "/topics/" in url:
        return url.replace("/topics/", "/rss/topics/", 1)
    if "/search?" in url:
        return url.replace("/search?", "/rss/search?", 1)
    return url.replace("news.google.com/", "news.google.com/rss/", 1)


def normalize_feed_url(url: str) -> str:
    """Reduce the query to locale parameters, or drop it if that changes nothing."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    kept = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key in LOCALE_PARAMS]
    normalized = urlunsplit(parts._replace(query=urlencode(kept)))
    if normalized == url:
        return urlunsplit(parts._replace(query=""))
    return normalized


def previous_midnight(now: datetime | None = None) -> datetime:
    """Start of yesterday in the local timezone of ``now``."""
    now = now or datetime.now().astimezone()
    return (now - timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


def filter_by_date(items: list[FeedItem], since: datetime, until: datetime | None = None) -> list[FeedItem]:
    """Keep items published inside ``[since, until]``.

    Args:
        items: Discovered FeedItems
        since: Window start (timezone-aware)
        until: Window end; defaults to the current time

    Returns:
        Matching items in their original order; undated items are dropped
    """
    until = until or datetime.now(timezone.utc)
    return [
        item
        for item in items
        if item.published_at is not None and since <= item.published_at <= until
    ]


class FeedExtractor:
    """Fetches aggregator feeds and pages and yields FeedItems."""

    def __init__(
        self,
        cfg: FeedConfig,
        codec: TokenCodec | None = None,
        logger: logging.Logger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        long_token_threshold: int = LONG_TOKEN_THRESHOLD,
    ):
        self.cfg = cfg
        self.codec = codec or TokenCodec()
        self.logger = logger
        self.long_token_threshold = long_token_threshold
        self._transport = transport

    async def extract(self, feed_url: str) -> list[FeedItem]:
        """Fetch and parse the RSS representation of a topic or search.

        Args:
            feed_url: Aggregator address; page URLs are mapped to their feed

        Returns:
            FeedItems in feed order

        Raises:
            FeedError: If the feed cannot be fetched after the 404 retry
        """
        rss_url = feed_representation_url(feed_url)
        response = await self._get(rss_url)

        if response.status_code == 404:
            retry_url = normalize_feed_url(rss_url)
            if retry_url != rss_url:
                log_event(
                    self.logger,
                    "Feed not found, retrying with normalized URL",
                    level=logging.WARNING,
                    event="feed_retry",
                    url=rss_url,
                    retry_url=retry_url,
                )
                rss_url = retry_url
                response = await self._get(rss_url)

        if response.status_code != 200:
            raise FeedError(f"Feed request failed: HTTP {response.status_code} for {rss_url}", response.status_code)

        items = self.parse_feed(response.content)
        decoded = sum(1 for item in items if item.decoded_url)
        log_event(
            self.logger,
            "Feed parsed",
            event="feed_parsed",
            url=rss_url,
            items=len(items),
            decoded=decoded,
        )
        return items

    def parse_feed(self, content: bytes | str) -> list[FeedItem]:
        """Parse RSS content into FeedItems, decoding each token eagerly."""
        parsed = feedparser.parse(content)
        if parsed.bozo and not parsed.entries:
            raise FeedError(f"Feed could not be parsed: {parsed.get('bozo_exception')}")

        items: list[FeedItem] = []
        for entry in parsed.entries:
            link = entry.get("link")
            if not link:
                continue
            token = Token.parse(link, origin="feed", long_threshold=self.long_token_threshold)
            source = _entry_source(entry)
            items.append(
                FeedItem(
                    token=token,
                    title=_strip_source_suffix(entry.get("title", ""), source),
                    published_at=_entry_published(entry),
                    source=source,
                    decoded_url=self.codec.decode(token),
                )
            )
        return items

    async def scrape(self, page_url: str) -> list[FeedItem]:
        """Collect article links from an aggregator HTML page."""
        response = await self._get(page_url)
        if response.status_code != 200:
            raise FeedError(f"Page request failed: HTTP {response.status_code} for {page_url}", response.status_code)
        items = self.parse_html(response.text)
        log_event(
            self.logger,
            "Page scraped",
            event="page_scraped",
            url=page_url,
            items=len(items),
        )
        return items

    def parse_html(self, html: str, base_url: str = AGGREGATOR_BASE) -> list[FeedItem]:
        """Extract one FeedItem per distinct article link on a page.

        Args:
            html: Page markup
            base_url: Base the ``./articles/`` style links are relative to

        Returns:
            FeedItems in page order, duplicate links collapsed
        """
        soup = BeautifulSoup(html, "html.parser")
        found: dict[str, dict] = {}

        for anchor in soup.select(ARTICLE_LINK_SELECTOR):
            raw = absolutize(anchor["href"], base_url)
            title = anchor.get_text(" ", strip=True) or anchor.get("aria-label", "").strip()
            entry = found.get(raw)
            if entry is None:
                entry = {"title": "", "published_at": None}
                found[raw] = entry
            if title and not entry["title"]:
                entry["title"] = title
            if entry["published_at"] is None:
                entry["published_at"] = _anchor_published(anchor)

        items: list[FeedItem] = []
        for raw, entry in found.items():
            token = Token.parse(raw, origin="scraped", long_threshold=self.long_token_threshold)
            items.append(
                FeedItem(
                    token=token,
                    title=entry["title"],
                    published_at=entry["published_at"],
                    decoded_url=self.codec.decode(token),
                )
            )
        return items

    async def _get(self, url: str) -> httpx.Response:
        headers = {"User-Agent": self.cfg.user_agent}
        try:
            async with httpx.AsyncClient(
                timeout=self.cfg.timeout_seconds,
                headers=headers,
                follow_redirects=True,
                trust_env=self.cfg.trust_env,
                transport=self._transport,
            ) as client:
                return await client.get(url)
        except httpx.HTTPError as exc:
            raise FeedError(f"{type(exc).__name__}: {exc}") from exc


def _entry_source(entry) -> str | None:
    source = entry.get("source")
    if not source:
        return None
    title = source.get("title")
    return title.strip() if title else None


def _strip_source_suffix(title: str, source: str | None) -> str:
    title = title.strip()
    if source:
        suffix = f" - {source}"
        if title.endswith(suffix):
            return title[: -len(suffix)].rstrip()
    return title


def _entry_published(entry) -> datetime | None:
    for attr in ("published_parsed", "updated_parsed"):
        value = entry.get(attr)
        if value:
            # feedparser normalises to UTC
            return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    return None


def _anchor_published(anchor) -> datetime | None:
    article = anchor.find_parent("article")
    if article is None:
        return None
    node = article.select_one("time[datetime]")
    if node is None:
        return None
    return _parse_iso(node["datetime"])


def _parse_iso(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
