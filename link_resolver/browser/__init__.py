"""
Browser-backed resolution.

This package contains the abstract navigator interface and its Playwright
implementation.
"""

from .base import BrowserNavigator
from .navigator import ConsentSession, PlaywrightNavigator, create_navigator

__all__ = [
    "BrowserNavigator",
    "ConsentSession",
    "PlaywrightNavigator",
    "create_navigator",
]
