"""Sandboxed, single-use headless browser session (Playwright / Chromium).

A :class:`BrowserSession` moves through ``uninitialized → active →
closed`` exactly once.  Every action:

* is only valid while ``active``;
* counts against ``max_actions`` (the call that would exceed the budget
  raises :class:`~concierge.errors.ResourceLimitError` and does nothing);
* returns a fresh :class:`~concierge.models.PageState` snapshot.

Navigation targets go through :func:`~concierge.browser.policy.is_url_allowed`
before any request is made, and a route handler applies the policy to
every request the page issues (documents, link clicks, form posts,
scripts, fetch/XHR).  Playwright only routes the first URL of a redirect
chain, so redirect hops are checked after landing, and a page that ends
up on a disallowed URL is reset to ``about:blank``.  Images, media,
fonts and stylesheets are never fetched.

Sessions are owned by exactly one agent-loop execution through
:class:`BrowserScope`, which creates the session lazily on first use and
guarantees ``close()`` on every exit path.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from concierge.browser.policy import is_url_allowed
from concierge.config import (
    BROWSER_EXECUTABLE_PATH,
    BROWSER_MAX_ACTIONS,
    NAVIGATION_TIMEOUT_MS,
    PAGE_TEXT_MAX_LENGTH,
)
from concierge.errors import (
    BrowserStateError,
    NavigationTimeoutError,
    NotFoundError,
    ResourceLimitError,
    SecurityError,
)
from concierge.models import PageState

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 800}
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
]
BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font", "stylesheet"})

BLANK_PAGE = "about:blank"
SCROLL_STEP_PX = 500
MAX_WAIT_MS = 5000
DEFAULT_WAIT_MS = 2000
TYPE_DELAY_MS = 50

PAGE_STATE_SCRIPT = """
(maxLength) => {
  const text = (document.body && document.body.innerText) || '';
  const fields = [];
  for (const el of document.querySelectorAll('input, select, textarea')) {
    if (el.type === 'hidden') continue;
    const label = (el.labels && el.labels[0] && el.labels[0].innerText)
      || el.getAttribute('aria-label') || el.getAttribute('placeholder') || el.name || '';
    fields.push({
      type: el.tagName.toLowerCase() + (el.type ? `[${el.type}]` : ''),
      label: label.slice(0, 100),
      value: (el.value || '').slice(0, 200),
      selector: el.id ? `#${el.id}` : (el.name ? `[name="${el.name}"]` : null),
    });
  }
  const clickables = [];
  for (const el of document.querySelectorAll('a, button, [role="button"], input[type="submit"]')) {
    const label = (el.innerText || el.value || el.getAttribute('aria-label') || '').trim();
    if (!label || label.length > 100) continue;
    clickables.push({tag: el.tagName.toLowerCase(), text: label, href: el.href || null});
  }
  return {
    visibleText: text.slice(0, maxLength),
    formFields: fields.slice(0, 20),
    clickables: clickables.slice(0, 30),
  };
}
"""

CLICK_BY_TEXT_SCRIPT = """
(needle) => {
  const wanted = needle.toLowerCase();
  const els = [...document.querySelectorAll('a, button, [role="button"], input[type="submit"]')];
  const el = els.find(e => (e.innerText || e.value || '').trim().toLowerCase().includes(wanted));
  if (!el) return false;
  el.click();
  return true;
}
"""


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class BrowserHandle:
    """The live Playwright objects behind one session."""

    page: Any
    browser: Any
    playwright: Any = None

    async def close(self) -> None:
        try:
            await self.browser.close()
        finally:
            if self.playwright is not None:
                await self.playwright.stop()


Launcher = Callable[[], Awaitable[BrowserHandle]]


async def launch_chromium() -> BrowserHandle:
    """Start a headless Chromium with a fixed viewport and user agent."""
    pw = await async_playwright().start()
    try:
        browser = await pw.chromium.launch(
            headless=True,
            args=LAUNCH_ARGS,
            executable_path=BROWSER_EXECUTABLE_PATH,
            timeout=NAVIGATION_TIMEOUT_MS,
        )
        context = await browser.new_context(viewport=VIEWPORT, user_agent=USER_AGENT)
        page = await context.new_page()
    except BaseException:
        await pw.stop()
        raise
    return BrowserHandle(page=page, browser=browser, playwright=pw)


def label_selector(label: str) -> str:
    """CSS selector matching inputs whose placeholder or name mentions *label*."""
    safe = label.replace("\\", "\\\\").replace('"', '\\"')
    return (
        f'input[placeholder*="{safe}" i], input[name*="{safe}" i], '
        f'textarea[placeholder*="{safe}" i], textarea[name*="{safe}" i]'
    )


class BrowserSession:
    """One sandboxed browser, usable for at most ``max_actions`` actions."""

    def __init__(
        self,
        *,
        max_actions: int = BROWSER_MAX_ACTIONS,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        page_text_max_length: int = PAGE_TEXT_MAX_LENGTH,
        launcher: Launcher = launch_chromium,
    ) -> None:
        self.max_actions = max_actions
        self.navigation_timeout_ms = navigation_timeout_ms
        self.page_text_max_length = page_text_max_length
        self.action_count = 0
        self._launcher = launcher
        self._handle: BrowserHandle | None = None
        self._state = SessionState.UNINITIALIZED

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_url(self) -> str | None:
        return self._handle.page.url if self._handle else None

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        if self._state is not SessionState.UNINITIALIZED:
            raise BrowserStateError(f"Cannot init a browser session in state {self._state.value}")
        try:
            self._handle = await self._launcher()
            await self._handle.page.route("**/*", self._filter_request)
        except BaseException:
            await self.close()
            raise
        self._state = SessionState.ACTIVE
        logger.debug("Browser session started (budget=%d actions)", self.max_actions)

    async def close(self) -> None:
        """Tear down the browser process.  Safe to call in any state."""
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as exc:
            logger.warning("Browser close error: %s", exc)
        logger.debug("Browser session closed after %d actions", self.action_count)

    async def _filter_request(self, route) -> None:
        request = route.request
        if request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        elif not is_url_allowed(request.url):
            logger.warning(
                "Blocked browser %s request to disallowed URL %s",
                request.resource_type, request.url,
            )
            await route.abort("blockedbyclient")
        else:
            await route.continue_()

    # ── Guards ───────────────────────────────────────────────────────

    def _require_active(self) -> None:
        if self._state is not SessionState.ACTIVE:
            raise BrowserStateError(
                f"Browser session is {self._state.value}; actions need an active session"
            )

    def _consume_action(self, action: str) -> None:
        self._require_active()
        if self.action_count >= self.max_actions:
            raise ResourceLimitError(
                f"Browser session limit reached ({self.max_actions} actions). "
                "End this browser task now; a new session can be started in a later turn."
            )
        self.action_count += 1
        logger.debug("Browser action %d/%d: %s", self.action_count, self.max_actions, action)

    @property
    def _page(self):
        return self._handle.page

    async def _ensure_page_allowed(self) -> None:
        """Re-check the landed URL; a redirect may have left the allowed space."""
        if self._page.url != BLANK_PAGE and not is_url_allowed(self._page.url):
            landed = self._page.url
            await self._page.goto(BLANK_PAGE)
            raise SecurityError(f"URL not allowed after redirect: {landed}")

    # ── Snapshot ─────────────────────────────────────────────────────

    async def page_state(self) -> PageState:
        raw = await self._page.evaluate(PAGE_STATE_SCRIPT, self.page_text_max_length)
        return PageState(
            title=await self._page.title(),
            url=self._page.url,
            visible_text=(raw.get("visibleText") or "")[: self.page_text_max_length],
            form_fields=raw.get("formFields") or [],
            clickables=raw.get("clickables") or [],
        )

    # ── Actions ──────────────────────────────────────────────────────

    async def navigate(self, url: str) -> PageState:
        self._require_active()
        if not is_url_allowed(url):
            raise SecurityError(f"URL not allowed: {url}")
        self._consume_action("navigate")
        try:
            await self._page.goto(
                url, wait_until="networkidle", timeout=self.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(
                f"Page did not settle within {self.navigation_timeout_ms} ms: {url}"
            ) from exc
        await self._ensure_page_allowed()
        return await self.page_state()

    async def click(self, selector: str | None = None, text: str | None = None) -> PageState:
        self._consume_action("click")
        if selector:
            try:
                await self._page.click(selector, timeout=self.navigation_timeout_ms)
            except PlaywrightTimeoutError as exc:
                raise NotFoundError(f"No element matches selector: {selector}") from exc
        elif text:
            clicked = await self._page.evaluate(CLICK_BY_TEXT_SCRIPT, text)
            if not clicked:
                raise NotFoundError(f'No clickable element found with text: "{text}"')
        else:
            raise NotFoundError("click requires either a selector or text")

        # Not every click navigates (modals, in-page tabs).
        try:
            await self._page.wait_for_load_state(
                "networkidle", timeout=self.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError:
            logger.debug("No navigation settled after click; continuing")
        await self._ensure_page_allowed()
        return await self.page_state()

    async def type(self, value: str, selector: str | None = None, label: str | None = None) -> PageState:
        self._consume_action("type")
        target = selector or (label_selector(label) if label else None)
        if not target:
            raise NotFoundError("type requires either a selector or a field label")
        try:
            await self._page.fill(target, "", timeout=self.navigation_timeout_ms)
            await self._page.type(target, value, delay=TYPE_DELAY_MS)
        except PlaywrightTimeoutError as exc:
            raise NotFoundError(f"No input field matches: {target}") from exc
        return await self.page_state()

    async def select(self, selector: str, value: str) -> PageState:
        self._consume_action("select")
        try:
            await self._page.select_option(
                selector, value=value, timeout=self.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NotFoundError(f"No select element matches: {selector}") from exc
        except PlaywrightError as exc:
            raise NotFoundError(f"Could not select {value!r} in {selector}: {exc}") from exc
        return await self.page_state()

    async def extract(self) -> PageState:
        self._consume_action("extract")
        return await self.page_state()

    async def wait(self, milliseconds: int | None = None) -> PageState:
        self._consume_action("wait")
        ms = DEFAULT_WAIT_MS if milliseconds is None else max(0, min(milliseconds, MAX_WAIT_MS))
        await asyncio.sleep(ms / 1000)
        return await self.page_state()

    async def back(self) -> PageState:
        self._consume_action("back")
        try:
            await self._page.go_back(
                wait_until="networkidle", timeout=self.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(
                f"Previous page did not settle within {self.navigation_timeout_ms} ms"
            ) from exc
        await self._ensure_page_allowed()
        return await self.page_state()

    async def scroll(self, direction: str = "down") -> PageState:
        self._consume_action("scroll")
        delta = -SCROLL_STEP_PX if direction == "up" else SCROLL_STEP_PX
        await self._page.mouse.wheel(0, delta)
        return await self.page_state()


class BrowserScope:
    """Owns at most one :class:`BrowserSession` for one agent-loop execution.

    The session is created on the first :meth:`get` and closed exactly
    once when the scope exits, whichever way it exits::

        async with BrowserScope() as browser:
            session = await browser.get()
            await session.navigate("https://example.com")
    """

    def __init__(self, factory: Callable[[], BrowserSession] = BrowserSession) -> None:
        self._factory = factory
        self._session: BrowserSession | None = None
        self._closed = False

    @property
    def session(self) -> BrowserSession | None:
        return self._session

    async def get(self) -> BrowserSession:
        if self._closed:
            raise BrowserStateError("Browser scope already released")
        if self._session is None:
            session = self._factory()
            await session.init()
            self._session = session
        return self._session

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._session is not None:
            await self._session.close()

    async def __aenter__(self) -> BrowserScope:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
