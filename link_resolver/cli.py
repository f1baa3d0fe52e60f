"""
Command-line interface for the news link resolver.

Uses Typer to provide commands for offline decoding, batch resolution of
token lists, and full feed runs. Supports loading .env files so proxy
settings reach the HTTP clients.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from .codec import Decoded, TokenCodec
from .config import AppConfig, load_config
from .core.errors import BrowserUnavailable, FeedError
from .orchestrator import BatchOptions
from .runner import run_feed, run_tokens

try:
    from dotenv import load_dotenv
except Exception:  # noqa: BLE001
    load_dotenv = None

app = typer.Typer(add_completion=False)
console = Console()


@app.command()
def decode(token: str = typer.Argument(..., help="Aggregator article link.")):
    """Decode a token offline, without any network access."""
    outcome = TokenCodec().inspect(token)
    if isinstance(outcome, Decoded):
        console.print(outcome.url, highlight=False, soft_wrap=True)
        return
    console.print(f"[red]Not decodable offline[/red]: {outcome.reason}")
    raise typer.Exit(code=1)


@app.command()
def resolve(
    tokens: list[str] = typer.Argument(None, help="Aggregator links to resolve."),
    input: Path | None = typer.Option(None, "--input", "-i", exists=True, readable=True, help="File with one link per line."),
    output: Path = typer.Option(Path("out/resolved.json"), "--output", "-o"),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    concurrency: int | None = typer.Option(None, "--concurrency", help="Tokens resolved at the same time."),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", help="Browser timeout per token."),
    browser: bool | None = typer.Option(None, "--browser/--no-browser", help="Enable or disable the browser fallback."),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
):
    """Resolve aggregator links to publisher URLs and write a JSON report."""
    values = list(tokens or [])
    if input is not None:
        values.extend(line.strip() for line in input.read_text(encoding="utf-8").splitlines() if line.strip())
    if not values:
        console.print("[red]No tokens given[/red]")
        raise typer.Exit(code=2)

    cfg = _load(config, log_level, browser)
    options = _options(cfg, concurrency, timeout_ms)
    try:
        output_path = run_tokens(values, output, cfg, options, show_progress=progress, console=console)
    except BrowserUnavailable as exc:
        console.print(f"[red]Browser unavailable[/red]: {exc}")
        raise typer.Exit(code=1)
    console.print(f"Report written: {output_path}")


@app.command()
def feed(
    url: str = typer.Argument(..., help="Topic, search or RSS address on the aggregator."),
    output: Path = typer.Option(Path("out/records.json"), "--output", "-o"),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    concurrency: int | None = typer.Option(None, "--concurrency", help="Tokens resolved at the same time."),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", help="Browser timeout for scraped tokens."),
    browser: bool | None = typer.Option(None, "--browser/--no-browser", help="Enable or disable the browser fallback."),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    since_midnight: bool | None = typer.Option(
        None, "--since-midnight/--all-dates", help="Only resolve items published since the start of yesterday."
    ),
):
    """Extract a feed, resolve every article and write url/date/title/source records."""
    cfg = _load(config, log_level, browser)
    if since_midnight is not None:
        cfg.feed.since_previous_midnight = since_midnight
    options = _options(cfg, concurrency, timeout_ms)
    try:
        output_path = run_feed(url, output, cfg, options, show_progress=progress, console=console)
    except (FeedError, BrowserUnavailable) as exc:
        console.print(f"[red]{type(exc).__name__}[/red]: {exc}")
        raise typer.Exit(code=1)
    console.print(f"Records written: {output_path}")


def _load(config: Path | None, log_level: str | None, browser: bool | None) -> AppConfig:
    # Load environment variables from .env if available
    if load_dotenv is not None:
        load_dotenv()

    cfg = load_config(str(config) if config else None)
    if log_level:
        cfg.logging.level = log_level
    if browser is not None:
        cfg.browser.enabled = browser
    return cfg


def _options(cfg: AppConfig, concurrency: int | None, timeout_ms: int | None) -> BatchOptions:
    options = BatchOptions.from_config(cfg)
    if concurrency is not None:
        options.concurrency = concurrency
    if timeout_ms is not None:
        options.timeout_ms = timeout_ms
    return options


if __name__ == "__main__":
    app()
