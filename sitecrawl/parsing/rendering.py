"""Browser-based rendering for JavaScript-heavy web pages.

This module provides Playwright-based rendering for pages whose static HTML
is an empty application shell. The browser is expensive to start, so one
:class:`BrowserManager` owns it for the lifetime of a scraper: it launches
lazily on first use, closes itself after a period of inactivity and is shut
down explicitly with :meth:`BrowserManager.close`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

logger = logging.getLogger(__name__)

# Default timeouts in milliseconds
DEFAULT_NAVIGATION_TIMEOUT = 15000
DEFAULT_WAIT_TIMEOUT = 10000

DEFAULT_IDLE_SECONDS = 5.0

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

STEALTH_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

_BLOCKED_RESOURCES = ("image", "stylesheet", "font", "media")
_STEALTH_BLOCKED_RESOURCES = ("image", "font", "media")

_STEALTH_JS = """
// Remove webdriver property
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined
});

// Add chrome object for better Chrome impersonation
window.chrome = {
    runtime: {},
    loadTimes: function() {},
    csi: function() {},
    app: {}
};

// Override plugins to appear non-headless
Object.defineProperty(navigator, 'plugins', {
    get: () => [
        {name: 'Chrome PDF Plugin', description: 'Portable Document Format', filename: 'internal-pdf-viewer'},
        {name: 'Chrome PDF Viewer', description: '', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai'},
        {name: 'Native Client', description: '', filename: 'internal-nacl-plugin'}
    ]
});

Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en']
});

Object.defineProperty(navigator, 'platform', {
    get: () => 'Win32'
});

Object.defineProperty(navigator, 'hardwareConcurrency', {
    get: () => 8
});
"""

_BALANCED_STEALTH_JS = """
const patchWebGL = (proto) => {
    const getParameter = proto.getParameter;
    proto.getParameter = function(parameter) {
        if (parameter === 37445) return 'Intel Inc.';
        if (parameter === 37446) return 'Intel Iris OpenGL Engine';
        return getParameter.call(this, parameter);
    };
};
patchWebGL(WebGLRenderingContext.prototype);
if (typeof WebGL2RenderingContext !== 'undefined') {
    patchWebGL(WebGL2RenderingContext.prototype);
}
"""

STEALTH_LEVELS = ("basic", "balanced")


class RenderingError(Exception):
    """Raised when browser rendering fails."""


@dataclass(slots=True, frozen=True)
class RenderedPage:
    """Result of rendering a page with a browser."""

    url: str
    final_url: str
    html: str
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    title: str | None = None

    @property
    def content_length(self) -> int:
        """Return the length of the rendered HTML."""
        return len(self.html)


def is_playwright_available() -> bool:
    """Check if Playwright is importable."""
    try:
        import playwright.async_api  # noqa: F401
    except ImportError:
        return False
    return True


def _context_options(stealth: bool) -> Dict[str, Any]:
    if not stealth:
        return {"user_agent": DEFAULT_USER_AGENT}
    return {
        "user_agent": STEALTH_USER_AGENT,
        "viewport": {"width": 1366, "height": 768},
        "locale": "en-US",
        "timezone_id": "America/New_York",
        "color_scheme": "light",
        "extra_http_headers": {
            "Accept-Language": "en-US,en;q=0.9",
            "Upgrade-Insecure-Requests": "1",
        },
    }


class BrowserManager:
    """Owns a shared headless Chromium instance.

    Usage:
        browser = BrowserManager()
        try:
            page = await browser.get_page("https://example.com/app")
        finally:
            await browser.close()

    ``acquire``/``release`` bracket each use; when the last user releases,
    an idle timer closes the browser after ``idle_seconds``. The next
    ``acquire`` relaunches it.
    """

    def __init__(self, *, headless: bool = True, idle_seconds: float = DEFAULT_IDLE_SECONDS) -> None:
        self.headless = headless
        self.idle_seconds = idle_seconds
        self._playwright: "Playwright | None" = None
        self._browser: "Browser | None" = None
        self._users = 0
        self._lock = asyncio.Lock()
        self._idle_handle: asyncio.TimerHandle | None = None
        self._idle_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> "Browser":
        """Return the running browser, launching it if needed."""
        async with self._lock:
            self._cancel_idle_timer()
            if not self.is_running:
                await self._launch()
            self._users += 1
            assert self._browser is not None
            return self._browser

    def release(self) -> None:
        """Give the browser back; arms the idle timer when nobody uses it."""
        self._users = max(0, self._users - 1)
        if self._users == 0 and self._browser is not None:
            loop = asyncio.get_running_loop()
            self._idle_handle = loop.call_later(self.idle_seconds, self._on_idle)

    async def close(self) -> None:
        """Close the browser and the Playwright driver."""
        async with self._lock:
            self._cancel_idle_timer()
            await self._shutdown()

    async def _launch(self) -> None:
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:
            raise RenderingError(
                "Playwright is not installed. Install with: pip install playwright && playwright install chromium"
            ) from exc

        await self._shutdown()
        logger.info("Launching headless browser")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                ],
            )
        except Exception as exc:
            await self._shutdown()
            raise RenderingError(
                f"Failed to launch browser (run 'playwright install chromium'): {exc}"
            ) from exc

    async def _shutdown(self) -> None:
        browser, self._browser = self._browser, None
        driver, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:
                logger.debug("Ignoring error while closing browser: %s", exc)
        if driver is not None:
            try:
                await driver.stop()
            except Exception as exc:
                logger.debug("Ignoring error while stopping Playwright: %s", exc)

    def _cancel_idle_timer(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle(self) -> None:
        self._idle_handle = None
        if self._users == 0:
            logger.debug("Closing idle browser")
            self._idle_task = asyncio.get_running_loop().create_task(self._close_if_idle())

    async def _close_if_idle(self) -> None:
        async with self._lock:
            if self._users == 0:
                await self._shutdown()

    async def get_page(
        self,
        url: str,
        wait_for: str | None = None,
        *,
        stealth: bool = False,
        stealth_level: str = "balanced",
        timeout: int = DEFAULT_NAVIGATION_TIMEOUT,
    ) -> RenderedPage:
        """Render a page and return its HTML.

        Images, fonts and media are blocked to save bandwidth; stylesheets
        are blocked too unless ``stealth`` is set.

        Args:
            url: The URL to render.
            wait_for: Optional CSS selector to wait for after load.
            stealth: Apply fingerprint hardening to the browser context.
            stealth_level: "basic" or "balanced" (adds WebGL vendor masking).
            timeout: Navigation timeout in milliseconds.

        Returns:
            RenderedPage with the rendered HTML content.

        Raises:
            RenderingError: If navigation or rendering fails.
        """
        browser = await self.acquire()
        try:
            context = await browser.new_context(**_context_options(stealth))
            try:
                if stealth:
                    await context.add_init_script(_STEALTH_JS)
                    if stealth_level == "balanced":
                        await context.add_init_script(_BALANCED_STEALTH_JS)
                page = await context.new_page()
                page.set_default_timeout(timeout)

                blocked = _STEALTH_BLOCKED_RESOURCES if stealth else _BLOCKED_RESOURCES

                async def _route(route):
                    if route.request.resource_type in blocked:
                        await route.abort()
                    else:
                        await route.continue_()

                await page.route("**/*", _route)

                response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
                if wait_for:
                    await page.wait_for_selector(wait_for, timeout=DEFAULT_WAIT_TIMEOUT)

                return RenderedPage(
                    url=url,
                    final_url=page.url or url,
                    html=await page.content(),
                    status=response.status if response is not None else 200,
                    headers=dict(response.headers) if response is not None else {},
                    title=await page.title(),
                )
            finally:
                await context.close()
        except RenderingError:
            raise
        except Exception as exc:
            logger.error("Failed to render %s: %s", url, exc)
            raise RenderingError(f"Failed to render URL '{url}': {exc}") from exc
        finally:
            self.release()
