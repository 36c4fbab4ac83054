"""Tests for the sandboxed browser session and its scope."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from concierge.browser.session import (
    BLANK_PAGE,
    SCROLL_STEP_PX,
    BrowserScope,
    SessionState,
    label_selector,
)
from concierge.errors import (
    BrowserStateError,
    NotFoundError,
    ResourceLimitError,
    SecurityError,
)

# ── Lifecycle ────────────────────────────────────────────────────────


class TestLifecycle:
    async def test_starts_uninitialized_and_becomes_active(self, session_factory, fake_page):
        session = session_factory()
        assert session.state is SessionState.UNINITIALIZED

        await session.init()

        assert session.state is SessionState.ACTIVE
        assert fake_page.route_handler is not None

    async def test_actions_before_init_are_rejected(self, session_factory):
        session = session_factory()
        with pytest.raises(BrowserStateError):
            await session.extract()
        assert session.action_count == 0

    async def test_close_is_idempotent(self, session_factory, fake_browser):
        session = session_factory()
        await session.init()

        await session.close()
        await session.close()

        assert session.state is SessionState.CLOSED
        assert fake_browser.close_calls == 1

    async def test_closed_session_cannot_be_reused(self, session_factory):
        session = session_factory()
        await session.init()
        await session.close()

        with pytest.raises(BrowserStateError):
            await session.navigate("https://example.com")
        with pytest.raises(BrowserStateError):
            await session.init()

    async def test_failed_launch_leaves_session_closed(self):
        from concierge.browser.session import BrowserSession

        async def broken_launcher():
            raise RuntimeError("chromium missing")

        session = BrowserSession(launcher=broken_launcher)
        with pytest.raises(RuntimeError):
            await session.init()
        assert session.state is SessionState.CLOSED


# ── Actions ──────────────────────────────────────────────────────────


class TestActions:
    async def test_navigate_returns_page_state(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        state = await session.navigate("https://www.opentable.com/")

        assert state.url == "https://www.opentable.com/"
        assert state.title == "Page at https://www.opentable.com/"
        assert "Welcome to" in state.visible_text
        assert state.form_fields[0].selector == "#name"
        assert [c.text for c in state.clickables] == ["Reserve a table", "Menu"]
        assert session.action_count == 1

    async def test_visible_text_is_bounded(self, session_factory):
        session = session_factory(page_text_max_length=20)
        await session.init()

        state = await session.navigate("https://example.com/")

        assert len(state.visible_text) == 20

    async def test_click_by_text_is_case_insensitive_substring(self, session_factory, fake_page):
        session = session_factory()
        await session.init()
        await session.navigate("https://example.com/")

        await session.click(text="reserve")

        assert fake_page.clicked == ["Reserve a table"]

    async def test_click_by_unknown_text_raises_not_found(self, session_factory):
        session = session_factory()
        await session.init()
        await session.navigate("https://example.com/")

        with pytest.raises(NotFoundError):
            await session.click(text="Checkout")

    async def test_click_by_missing_selector_raises_not_found(self, session_factory, fake_page):
        fake_page.missing_selectors.add("#nope")
        session = session_factory()
        await session.init()

        with pytest.raises(NotFoundError):
            await session.click(selector="#nope")

    async def test_type_clears_field_before_typing(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        await session.type("Alice", selector="#name")

        assert fake_page.filled == [("#name", "")]
        assert fake_page.typed == [("#name", "Alice")]

    async def test_type_by_label_infers_selector(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        await session.type("2", label="party size")

        assert fake_page.typed == [(label_selector("party size"), "2")]

    async def test_select_chooses_option_by_value(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        await session.select("#time", "19:00")

        assert fake_page.selected == [("#time", "19:00")]

    async def test_scroll_moves_by_fixed_step(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        await session.scroll("down")
        await session.scroll("up")

        assert fake_page.mouse.wheel_calls == [(0, SCROLL_STEP_PX), (0, -SCROLL_STEP_PX)]

    async def test_back_returns_to_previous_page(self, session_factory):
        session = session_factory()
        await session.init()
        await session.navigate("https://example.com/a")
        await session.navigate("https://example.com/b")

        state = await session.back()

        assert state.url == "https://example.com/a"

    async def test_wait_is_clamped(self, session_factory, monkeypatch):
        sleep = AsyncMock()
        monkeypatch.setattr("concierge.browser.session.asyncio.sleep", sleep)
        session = session_factory()
        await session.init()

        await session.wait(60_000)

        sleep.assert_awaited_once_with(5.0)

    async def test_extract_twice_returns_same_url_and_title(self, session_factory):
        session = session_factory()
        await session.init()
        await session.navigate("https://example.com/menu")

        first = await session.extract()
        second = await session.extract()

        assert (first.url, first.title) == (second.url, second.title)


# ── Action budget ────────────────────────────────────────────────────


class TestActionBudget:
    async def test_action_past_budget_raises_and_is_not_counted(self, session_factory, fake_page):
        session = session_factory(max_actions=3)
        await session.init()
        for _ in range(3):
            await session.extract()

        with pytest.raises(ResourceLimitError):
            await session.navigate("https://example.com/")

        assert session.action_count == 3
        assert fake_page.goto_calls == []

    async def test_session_stays_closable_after_budget_exhausted(
        self, session_factory, fake_browser,
    ):
        session = session_factory(max_actions=1)
        await session.init()
        await session.extract()
        with pytest.raises(ResourceLimitError):
            await session.extract()

        await session.close()

        assert fake_browser.close_calls == 1


# ── SSRF guard ───────────────────────────────────────────────────────


class TestUrlAdmission:
    @pytest.mark.parametrize(
        "url",
        [
            "http://127.0.0.1/",
            "http://10.0.0.5/",
            "http://192.168.1.1/",
            "http://192.168.1.5/admin",
            "http://localhost/",
            "http://foo.internal/",
            "file:///etc/passwd",
        ],
    )
    async def test_blocked_navigation_never_reaches_the_page(
        self, session_factory, fake_page, url,
    ):
        session = session_factory()
        await session.init()

        with pytest.raises(SecurityError):
            await session.navigate(url)

        assert fake_page.goto_calls == []
        assert session.action_count == 0

    async def test_redirect_into_private_network_is_caught(self, session_factory, fake_page):
        fake_page.redirects["https://short.example/x"] = "http://10.1.2.3/admin"
        session = session_factory()
        await session.init()

        with pytest.raises(SecurityError):
            await session.navigate("https://short.example/x")

        assert fake_page.url == BLANK_PAGE

    async def test_route_handler_aborts_disallowed_navigation(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        route = MagicMock()
        route.request.resource_type = "document"
        route.request.is_navigation_request.return_value = True
        route.request.url = "http://169.254.169.254/latest"
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await fake_page.route_handler(route)

        route.abort.assert_awaited_once_with("blockedbyclient")
        route.continue_.assert_not_awaited()

    @pytest.mark.parametrize(
        ("resource_type", "url"),
        [
            ("fetch", "http://169.254.169.254/latest/meta-data/iam/"),
            ("xhr", "http://10.0.0.5/admin"),
            ("script", "http://localhost:8080/app.js"),
        ],
    )
    async def test_route_handler_aborts_page_issued_requests_to_private_hosts(
        self, session_factory, fake_page, resource_type, url,
    ):
        session = session_factory()
        await session.init()

        route = MagicMock()
        route.request.resource_type = resource_type
        route.request.is_navigation_request.return_value = False
        route.request.url = url
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await fake_page.route_handler(route)

        route.abort.assert_awaited_once_with("blockedbyclient")
        route.continue_.assert_not_awaited()

    async def test_route_handler_lets_public_fetches_through(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        route = MagicMock()
        route.request.resource_type = "fetch"
        route.request.is_navigation_request.return_value = False
        route.request.url = "https://api.example.com/slots"
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await fake_page.route_handler(route)

        route.continue_.assert_awaited_once()
        route.abort.assert_not_awaited()

    async def test_route_handler_drops_heavy_resources(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        route = MagicMock()
        route.request.resource_type = "image"
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await fake_page.route_handler(route)

        route.abort.assert_awaited_once_with()
        route.continue_.assert_not_awaited()

    async def test_route_handler_lets_public_documents_through(self, session_factory, fake_page):
        session = session_factory()
        await session.init()

        route = MagicMock()
        route.request.resource_type = "document"
        route.request.is_navigation_request.return_value = True
        route.request.url = "https://example.com/"
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await fake_page.route_handler(route)

        route.continue_.assert_awaited_once()


# ── Scope ────────────────────────────────────────────────────────────


class TestBrowserScope:
    async def test_session_created_lazily(self, session_factory, launcher):
        async with BrowserScope(session_factory) as scope:
            assert scope.session is None
            assert launcher.launches == []

            first = await scope.get()
            second = await scope.get()

        assert first is second
        assert len(launcher.launches) == 1

    async def test_closes_session_exactly_once_on_error(self, session_factory, fake_browser):
        with pytest.raises(RuntimeError):
            async with BrowserScope(session_factory) as scope:
                await scope.get()
                raise RuntimeError("tool blew up")

        assert fake_browser.close_calls == 1
        assert scope.session.state is SessionState.CLOSED

    async def test_unused_scope_launches_nothing(self, session_factory, launcher):
        async with BrowserScope(session_factory):
            pass
        assert launcher.launches == []

    async def test_get_after_release_is_rejected(self, session_factory):
        scope = BrowserScope(session_factory)
        await scope.aclose()
        with pytest.raises(BrowserStateError):
            await scope.get()
