"""Browser pool for efficient Playwright browser reuse."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright

from .. import config

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES = {"image", "font", "media"}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserPool:
    """
    Singleton pool around one shared headless Chromium.

    Every page lives in its own context (separate cookies, storage) but shares
    the browser process. After ``max_pages_per_browser`` pages the browser is
    recycled, at the first moment no page is open, to bound memory growth.
    """

    _instance: BrowserPool | None = None
    _lock = asyncio.Lock()

    def __init__(self, max_pages_per_browser: int = config.MAX_PAGES_PER_BROWSER):
        self.max_pages_per_browser = max_pages_per_browser
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._pages_opened = 0
        self._active_pages = 0
        self._browser_launch_lock = asyncio.Lock()

    @classmethod
    async def get_instance(cls) -> BrowserPool:
        """Get or create the singleton browser pool instance."""
        if cls._instance is None:
            async with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    async def _ensure_browser(self) -> Browser:
        """Return a connected browser, recycling or launching as needed."""
        async with self._browser_launch_lock:
            if (
                self._browser is not None
                and self._pages_opened >= self.max_pages_per_browser
                and self._active_pages == 0
            ):
                logger.info(
                    f"Reached {self._pages_opened} pages on this browser, recycling browser instance"
                )
                await self._close_browser()

            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._playwright is None:
                self._playwright = await async_playwright().start()

            logger.info("Launching headless browser")
            self._browser = await self._playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)
            self._pages_opened = 0
            return self._browser

    async def open_page(
        self,
        *,
        user_agent: str | None = None,
        locale: str | None = None,
        viewport: dict[str, int] | None = None,
        cookies: list[dict] | None = None,
        block_resources: bool = True,
    ) -> Page:
        """Open a page in a fresh context. Pair with ``close_page``."""
        browser = await self._ensure_browser()
        context: BrowserContext = await browser.new_context(
            user_agent=user_agent or DEFAULT_USER_AGENT,
            locale=locale or "en-IN",
            viewport=viewport or {"width": 1920, "height": 1080},
        )
        if cookies:
            await context.add_cookies(cookies)
        page = await context.new_page()
        if block_resources:
            await page.route("**/*", _block_heavy_resources)

        self._pages_opened += 1
        self._active_pages += 1
        logger.debug(f"Opened page ({self._active_pages} active, {self._pages_opened} on this browser)")
        return page

    async def close_page(self, page: Page) -> None:
        try:
            await page.context.close()
        except Exception as e:
            # The browser may already have been closed underneath the page.
            logger.warning(f"Error closing page: {e}")
        finally:
            self._active_pages = max(0, self._active_pages - 1)

    @asynccontextmanager
    async def get_page(self, **kwargs) -> AsyncIterator[Page]:
        """Open a page for the duration of the block."""
        page = await self.open_page(**kwargs)
        try:
            yield page
        finally:
            await self.close_page(page)

    async def _close_browser(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
        self._browser = None
        self._pages_opened = 0

    async def close(self) -> None:
        """Close the browser and cleanup resources."""
        await self._close_browser()
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    @property
    def active_pages(self) -> int:
        return self._active_pages

    @property
    def pages_opened(self) -> int:
        return self._pages_opened

    @classmethod
    async def shutdown(cls) -> None:
        """Shutdown the singleton instance."""
        if cls._instance is not None:
            await cls._instance.close()
            cls._instance = None


# Convenience function for getting a page
@asynccontextmanager
async def get_page(**kwargs) -> AsyncIterator[Page]:
    """Get a page from the shared pool."""
    pool = await BrowserPool.get_instance()
    async with pool.get_page(**kwargs) as page:
        yield page
