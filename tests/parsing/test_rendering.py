"""Tests for the browser rendering module."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sitecrawl.parsing.rendering import (
    BrowserManager,
    RenderedPage,
    RenderingError,
    STEALTH_USER_AGENT,
    is_playwright_available,
)


def _mock_browser(html: str = "<html><body>Rendered</body></html>", goto_error: Exception | None = None):
    response = MagicMock()
    response.status = 200
    response.headers = {"content-type": "text/html"}

    page = MagicMock()
    page.url = "https://example.com/final"
    page.route = AsyncMock()
    page.goto = AsyncMock(return_value=response, side_effect=goto_error)
    page.wait_for_selector = AsyncMock()
    page.content = AsyncMock(return_value=html)
    page.title = AsyncMock(return_value="Rendered Title")

    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.add_init_script = AsyncMock()
    context.close = AsyncMock()

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.is_connected.return_value = True
    browser.close = AsyncMock()
    return browser, context, page


class TestRenderedPage:
    """Tests for the RenderedPage dataclass."""

    def test_content_length(self) -> None:
        """content_length property returns HTML length."""
        page = RenderedPage(
            url="https://example.com",
            final_url="https://example.com",
            html="<html><body>Hello</body></html>",
            title="Example",
        )
        assert page.content_length == len(page.html)

    def test_defaults(self) -> None:
        page = RenderedPage(url="u", final_url="u", html="")
        assert page.status == 200
        assert page.headers == {}
        assert page.title is None


class TestIsPlaywrightAvailable:
    """Tests for Playwright availability check."""

    def test_returns_bool(self) -> None:
        assert isinstance(is_playwright_available(), bool)

    def test_returns_false_when_import_fails(self) -> None:
        with patch.dict("sys.modules", {"playwright": None, "playwright.async_api": None}):
            assert is_playwright_available() is False


class TestGetPage:
    """Tests for BrowserManager.get_page with a mocked browser."""

    def test_returns_rendered_page(self) -> None:
        browser, context, page = _mock_browser()
        manager = BrowserManager()

        with patch.object(BrowserManager, "acquire", AsyncMock(return_value=browser)):
            result = asyncio.run(manager.get_page("https://example.com/app", "#content"))

        assert result.html == "<html><body>Rendered</body></html>"
        assert result.final_url == "https://example.com/final"
        assert result.status == 200
        assert result.title == "Rendered Title"
        page.wait_for_selector.assert_awaited_once()
        assert page.wait_for_selector.call_args.args[0] == "#content"
        context.add_init_script.assert_not_awaited()
        context.close.assert_awaited_once()

    def test_stealth_context(self) -> None:
        browser, context, _ = _mock_browser()
        manager = BrowserManager()

        with patch.object(BrowserManager, "acquire", AsyncMock(return_value=browser)):
            asyncio.run(manager.get_page("https://example.com/", stealth=True, stealth_level="balanced"))

        assert browser.new_context.call_args.kwargs["user_agent"] == STEALTH_USER_AGENT
        assert context.add_init_script.await_count == 2

    def test_basic_stealth_skips_webgl_patch(self) -> None:
        browser, context, _ = _mock_browser()
        manager = BrowserManager()

        with patch.object(BrowserManager, "acquire", AsyncMock(return_value=browser)):
            asyncio.run(manager.get_page("https://example.com/", stealth=True, stealth_level="basic"))

        assert context.add_init_script.await_count == 1

    def test_navigation_failure_raises_rendering_error(self) -> None:
        browser, context, _ = _mock_browser(goto_error=Exception("net::ERR_NAME_NOT_RESOLVED"))
        manager = BrowserManager()

        with patch.object(BrowserManager, "acquire", AsyncMock(return_value=browser)):
            with pytest.raises(RenderingError, match="ERR_NAME_NOT_RESOLVED"):
                asyncio.run(manager.get_page("https://nowhere.invalid/"))

        context.close.assert_awaited_once()


class TestBrowserLifecycle:
    """Tests for acquire/release/close."""

    def test_launches_once_while_running(self) -> None:
        browser, _, _ = _mock_browser()
        manager = BrowserManager()
        launches: list[int] = []

        async def fake_launch() -> None:
            launches.append(1)
            manager._browser = browser

        async def run() -> None:
            with patch.object(manager, "_launch", new=fake_launch):
                await manager.acquire()
                await manager.acquire()
            manager._cancel_idle_timer()

        asyncio.run(run())
        assert launches == [1]
        assert manager.is_running

    def test_idle_timer_closes_browser(self) -> None:
        browser, _, _ = _mock_browser()
        manager = BrowserManager(idle_seconds=0.01)

        async def run() -> None:
            manager._browser = browser
            manager._users = 1
            manager.release()
            await asyncio.sleep(0.1)

        asyncio.run(run())
        browser.close.assert_awaited_once()
        assert manager.is_running is False

    def test_acquire_cancels_idle_timer(self) -> None:
        browser, _, _ = _mock_browser()
        manager = BrowserManager(idle_seconds=0.01)

        async def run() -> None:
            manager._browser = browser
            manager._users = 1
            manager.release()
            await manager.acquire()
            await asyncio.sleep(0.05)

        asyncio.run(run())
        browser.close.assert_not_awaited()

    def test_pending_idle_close_spares_reacquired_browser(self) -> None:
        browser, _, _ = _mock_browser()
        manager = BrowserManager(idle_seconds=60)

        async def run() -> None:
            manager._browser = browser
            manager._users = 1
            manager.release()
            manager._cancel_idle_timer()
            manager._on_idle()
            await manager.acquire()
            await asyncio.sleep(0.05)
            assert manager._browser is browser
            manager.release()
            manager._cancel_idle_timer()

        asyncio.run(run())
        browser.close.assert_not_awaited()

    def test_close_without_browser_is_noop(self) -> None:
        asyncio.run(BrowserManager().close())
