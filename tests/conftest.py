"""Shared test fixtures for the concierge test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ["METRICS_ENABLED"] = "false"


# ── Fake Playwright objects ──────────────────────────────────────────


class FakeMouse:
    def __init__(self) -> None:
        self.wheel_calls: list[tuple[int, int]] = []

    async def wheel(self, delta_x: int, delta_y: int) -> None:
        self.wheel_calls.append((delta_x, delta_y))


class FakePage:
    """Just enough of ``playwright.async_api.Page`` for BrowserSession.

    ``redirects`` maps a requested URL to the URL the page lands on.
    ``clickable_texts`` are the labels a click-by-text can find.
    ``missing_selectors`` make click/fill time out like a missing element.
    """

    def __init__(self) -> None:
        self.url = "about:blank"
        self.redirects: dict[str, str] = {}
        self.clickable_texts: list[str] = ["Reserve a table", "Menu"]
        self.missing_selectors: set[str] = set()
        self.goto_calls: list[str] = []
        self.clicked: list[str] = []
        self.typed: list[tuple[str, str]] = []
        self.filled: list[tuple[str, str]] = []
        self.selected: list[tuple[str, str]] = []
        self.history: list[str] = []
        self.route_handler = None
        self.mouse = FakeMouse()

    async def route(self, pattern, handler) -> None:
        self.route_handler = handler

    async def goto(self, url, wait_until=None, timeout=None) -> None:
        self.goto_calls.append(url)
        if self.url != "about:blank":
            self.history.append(self.url)
        self.url = self.redirects.get(url, url)

    async def go_back(self, wait_until=None, timeout=None) -> None:
        if self.history:
            self.url = self.history.pop()

    async def title(self) -> str:
        return "" if self.url == "about:blank" else f"Page at {self.url}"

    async def evaluate(self, script, arg=None):
        from concierge.browser.session import CLICK_BY_TEXT_SCRIPT, PAGE_STATE_SCRIPT

        if script == PAGE_STATE_SCRIPT:
            return {
                "visibleText": f"Welcome to {self.url}. " * 5,
                "formFields": [
                    {"type": "input[text]", "label": "Name", "value": "", "selector": "#name"},
                ],
                "clickables": [
                    {"tag": "button", "text": t, "href": None} for t in self.clickable_texts
                ],
            }
        if script == CLICK_BY_TEXT_SCRIPT:
            wanted = arg.lower()
            for text in self.clickable_texts:
                if wanted in text.lower():
                    self.clicked.append(text)
                    return True
            return False
        raise AssertionError(f"Unexpected script: {script[:40]!r}")

    def _check_selector(self, selector: str) -> None:
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        if selector in self.missing_selectors:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def click(self, selector, timeout=None) -> None:
        self._check_selector(selector)
        self.clicked.append(selector)

    async def wait_for_load_state(self, state=None, timeout=None) -> None:
        return None

    async def fill(self, selector, value, timeout=None) -> None:
        self._check_selector(selector)
        self.filled.append((selector, value))

    async def type(self, selector, value, delay=None) -> None:
        self.typed.append((selector, value))

    async def select_option(self, selector, value=None, timeout=None) -> None:
        self._check_selector(selector)
        self.selected.append((selector, value))


class FakeBrowser:
    def __init__(self) -> None:
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def fake_browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def launcher(fake_page, fake_browser):
    """A BrowserSession launcher that hands out the fake page."""
    from concierge.browser.session import BrowserHandle

    launches = []

    async def _launch():
        launches.append(1)
        return BrowserHandle(page=fake_page, browser=fake_browser)

    _launch.launches = launches
    return _launch


@pytest.fixture
def session_factory(launcher):
    """Build BrowserSessions wired to the fake launcher."""
    from concierge.browser.session import BrowserSession

    def _make(**kwargs):
        return BrowserSession(launcher=launcher, **kwargs)

    return _make


# ── Scripted LLM ─────────────────────────────────────────────────────


class ScriptedLLM:
    """An ``LLMClient`` that replays a fixed list of responses.

    Each entry is an ``LLMResponse`` or an exception to raise.  Every call
    records a snapshot of what the model was sent.
    """

    def __init__(self, responses) -> None:
        self._responses = list(responses)
        self.calls: list[dict] = []

    async def complete(self, system, messages, tools):
        self.calls.append({"system": system, "messages": list(messages), "tools": list(tools)})
        if not self._responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def scripted_llm():
    """Factory fixture: ``scripted_llm(resp1, resp2, ...)``."""

    def _make(*responses):
        return ScriptedLLM(responses)

    return _make


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data=None, status_code: int = 200, text: str | None = None, headers=None, url=None):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = text if text is not None else str(data)
        mock.headers = headers or {}
        mock.url = url
        return mock

    return _make
