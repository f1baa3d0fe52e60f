"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- CodecConfig: Offline token decoding settings
- RedirectConfig: HTTP redirect-following settings
- BrowserConfig: Headless browser fallback settings
- FeedConfig: Feed fetching settings
- BatchConfig: Batch concurrency and pacing
- CacheConfig: In-memory resolution cache
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

import yaml


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class CodecConfig:
    """Configuration for offline decoding.

    Attributes:
        long_token_threshold: Tokens longer than this are "long"; offline
                              decode is unlikely and they fall back to passthrough
    """

    long_token_threshold: int = 150


@dataclass
class RedirectConfig:
    """Configuration for the redirect resolver.

    Attributes:
        timeout_seconds: Per-request timeout
        attempts: Total attempts per token (timeouts and transport errors only)
        backoff_seconds: Fixed pause between attempts
        max_redirects: Maximum redirect hops to follow
        user_agent: HTTP User-Agent header string
        trust_env: Whether to respect system proxy settings
    """

    timeout_seconds: float = 10.0
    attempts: int = 2
    backoff_seconds: float = 2.0
    max_redirects: int = 10
    user_agent: str = DEFAULT_USER_AGENT
    trust_env: bool = True


@dataclass
class BrowserConfig:
    """Configuration for the headless browser fallback.

    Attributes:
        enabled: Whether the browser strategy may be used at all
        concurrency: Maximum simultaneous browser sessions
        timeout_ms: Hard timeout per attempt for directly scraped links
        feed_timeout_ms: Hard timeout per attempt for feed-article tokens
        consent_poll_ms: How long to look for a consent control after navigation
        settle_ms: How long to wait for the page to leave the aggregator before
                   harvesting its outbound links
        cooldown_every: Pause after this many browser-backed resolutions
        cooldown_seconds: Length of that pause
        headless: Run Chromium without a window
        user_agent: Browser User-Agent string
        locale: Browser locale, also decides which consent page is served
    """

    enabled: bool = True
    concurrency: int = 1
    timeout_ms: int = 30000
    feed_timeout_ms: int = 45000
    consent_poll_ms: int = 5000
    settle_ms: int = 10000
    cooldown_every: int = 10
    cooldown_seconds: float = 15.0
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = "en-US"


@dataclass
class FeedConfig:
    """Configuration for feed fetching.

    Attributes:
        timeout_seconds: HTTP request timeout
        user_agent: HTTP User-Agent header string
        trust_env: Whether to respect system proxy settings
        since_previous_midnight: Keep only items published since the start of yesterday
    """

    timeout_seconds: float = 15.0
    user_agent: str = "Mozilla/5.0 (compatible; NewsLinkResolver/1.0)"
    trust_env: bool = True
    since_previous_midnight: bool = False


@dataclass
class BatchConfig:
    """Configuration for batch resolution.

    Attributes:
        concurrency: Number of tokens escalated at the same time
        pacing_seconds: Pause after every token that touched the network
    """

    concurrency: int = 1
    pacing_seconds: float = 2.0


@dataclass
class CacheConfig:
    """Configuration for the in-memory resolution cache.

    Attributes:
        enabled: Whether resolved tokens are remembered across batches
        ttl_seconds: Entry lifetime; None keeps entries for the process lifetime
    """

    enabled: bool = True
    ttl_seconds: float | None = 86400.0


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the log file, written next to the output
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "resolve.jsonl"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    codec: CodecConfig = field(default_factory=CodecConfig)
    redirect: RedirectConfig = field(default_factory=RedirectConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig."""
    data = asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            data[key].update({k: v for k, v in value.items() if k in data[key]})
        else:
            data[key] = value
    return _fromdict(data)


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(
        codec=CodecConfig(**data["codec"]),
        redirect=RedirectConfig(**data["redirect"]),
        browser=BrowserConfig(**data["browser"]),
        feed=FeedConfig(**data["feed"]),
        batch=BatchConfig(**data["batch"]),
        cache=CacheConfig(**data["cache"]),
        logging=LoggingConfig(**data["logging"]),
    )
