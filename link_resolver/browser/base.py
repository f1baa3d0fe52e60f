"""
Abstract base class for browser navigators.

New navigators should inherit from BrowserNavigator and implement
resolve_via_browser.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..core.types import Token


class BrowserNavigator(ABC):
    """Abstract base class for browser-backed resolution.

    Implementations run one isolated browsing session per call and must
    release every browser resource before returning, whatever the outcome.
    """

    @abstractmethod
    async def resolve_via_browser(self, token: Token, timeout_ms: int) -> list[str]:
        """Navigate to a token and report the settled publisher URL(s).

        Args:
            token: The aggregator token to open
            timeout_ms: Hard timeout for the whole invocation

        Returns:
            Cleaned off-aggregator URLs; empty when the session did not settle

        Raises:
            BrowserUnavailable: If no browser could be started at all
        """
        raise NotImplementedError
