"""
Redirect-following resolver.

Issues a GET (HEAD is answered inconsistently by the aggregator) against
the token URL and reports where the redirect chain ends. A landing page on
the aggregator's own domains means an interstitial, not a resolution.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging

import httpx

from ..config import RedirectConfig
from ..core.errors import MalformedUrl, NetworkError, NetworkTimeout, categorize_error
from ..core.types import Token
from ..core.urls import is_off_aggregator
from ..utils.logging import log_event


@dataclass
class RedirectResult:
    """Result of following one token's redirect chain.

    Attributes:
        url: The URL that was requested
        final_url: Where the chain ended, or None if no response arrived
        status_code: Status of the final response, or None on transport failure
        error: Error message if every attempt failed, None otherwise
    """

    url: str
    final_url: str | None
    status_code: int | None
    error: str | None = None


class RedirectResolver:
    """Resolves tokens by letting the aggregator redirect to the publisher."""

    def __init__(
        self,
        cfg: RedirectConfig,
        logger: logging.Logger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cfg = cfg
        self.logger = logger
        self._transport = transport

    async def resolve(self, token: Token) -> str | None:
        """Return the off-aggregator landing URL for a token, or None."""
        result = await self.follow(token.raw)
        if result.final_url is None:
            log_event(
                self.logger,
                "Redirect failed",
                level=logging.DEBUG,
                event="redirect_failed",
                token=token.short(),
                error=result.error,
            )
            return None
        if result.final_url == token.raw or not is_off_aggregator(result.final_url):
            log_event(
                self.logger,
                "Redirect stayed on aggregator",
                level=logging.DEBUG,
                event="redirect_interstitial",
                token=token.short(),
                url=result.final_url,
                status_code=result.status_code,
            )
            return None
        # Publishers often answer bots with 403; the landing address still counts
        return result.final_url

    async def follow(self, url: str) -> RedirectResult:
        """Follow redirects with a fixed retry budget.

        Only timeouts and transport errors are retried; any HTTP response,
        whatever its status, ends the loop, as does a URL httpx cannot build
        a request for.

        Args:
            url: The URL to request

        Returns:
            RedirectResult with the final URL, or with error populated
        """
        last_error: str | None = None
        attempts = max(1, self.cfg.attempts)

        for attempt in range(attempts):
            try:
                response = await self._get(url)
                return RedirectResult(
                    url=url,
                    final_url=str(response.url),
                    status_code=response.status_code,
                )
            except (NetworkTimeout, NetworkError) as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                log_event(
                    self.logger,
                    "Redirect attempt failed",
                    level=logging.DEBUG,
                    event="redirect_retry",
                    url=url,
                    attempt=attempt + 1,
                    error_category=categorize_error(exc),
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(self.cfg.backoff_seconds)
            except httpx.TooManyRedirects as exc:
                return RedirectResult(url=url, final_url=None, status_code=None, error=f"TooManyRedirects: {exc}")
            except MalformedUrl as exc:
                log_event(
                    self.logger,
                    "Redirect target malformed",
                    level=logging.DEBUG,
                    event="redirect_malformed",
                    url=url,
                    error_category=categorize_error(exc),
                )
                return RedirectResult(url=url, final_url=None, status_code=None, error=f"MalformedUrl: {exc}")

        return RedirectResult(url=url, final_url=None, status_code=None, error=last_error)

    async def _get(self, url: str) -> httpx.Response:
        headers = {"User-Agent": self.cfg.user_agent}
        try:
            async with httpx.AsyncClient(
                timeout=self.cfg.timeout_seconds,
                headers=headers,
                follow_redirects=True,
                max_redirects=self.cfg.max_redirects,
                trust_env=self.cfg.trust_env,
                transport=self._transport,
            ) as client:
                return await client.get(url)
        except httpx.TimeoutException as exc:
            raise NetworkTimeout(str(exc)) from exc
        except httpx.TransportError as exc:
            raise NetworkError(str(exc)) from exc
        except httpx.TooManyRedirects:
            raise
        # Bad Location headers surface as InvalidURL, other HTTPErrors or idna's ValueError
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise MalformedUrl(f"{type(exc).__name__}: {exc}") from exc
