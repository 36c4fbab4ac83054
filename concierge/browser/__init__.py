"""Sandboxed browser automation: URL policy, session lifecycle, tool schema."""

from concierge.browser.policy import is_url_allowed
from concierge.browser.session import BrowserScope, BrowserSession, SessionState
from concierge.browser.tool import BROWSER_ACTION_TOOL, BROWSER_TOOL_NAME

__all__ = [
    "BROWSER_ACTION_TOOL",
    "BROWSER_TOOL_NAME",
    "BrowserScope",
    "BrowserSession",
    "SessionState",
    "is_url_allowed",
]
