"""Playwright-backed browser capability.

Each source runs in its own persistent profile directory so session state
(cookies, manual logins) survives between runs. A profile directory must
not be shared by two live browsers.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from playwright.async_api import (
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
    TimeoutError as PlaywrightTimeoutError,
)

from procurement_bot.config import settings
from procurement_bot.ingest.base import BrowserPage

logger = logging.getLogger(__name__)

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]
DEFAULT_VIEWPORT = {"width": 1280, "height": 720}


class PlaywrightPage(BrowserPage):
    """``BrowserPage`` over a live Playwright page."""

    def __init__(self, page: Page, navigation_timeout_ms: int = 30000):
        self._page = page
        self.navigation_timeout_ms = navigation_timeout_ms

    @property
    def raw(self) -> Page:
        return self._page

    @property
    def url(self) -> str:
        return self._page.url

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=self.navigation_timeout_ms)

    async def query_all(self, selector: str, root: Any = None) -> list[Any]:
        scope = root if root is not None else self._page
        return await scope.query_selector_all(selector)

    async def query_one(self, selector: str, root: Any = None) -> Optional[Any]:
        scope = root if root is not None else self._page
        return await scope.query_selector(selector)

    async def text(self, element: Any) -> str:
        if element is None:
            return ""
        return (await element.inner_text()) or ""

    async def attribute(self, element: Any, name: str) -> Optional[str]:
        if element is None:
            return None
        return await element.get_attribute(name)

    async def wait(self, ms: int) -> None:
        await self._page.wait_for_timeout(ms)

    async def wait_for_any(self, selectors: Sequence[str], timeout_ms: int) -> bool:
        if not selectors:
            return False
        try:
            await self._page.wait_for_selector(", ".join(selectors), timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    async def scroll_by(self, dy: int) -> None:
        await self._page.evaluate("dy => window.scrollBy(0, dy)", dy)

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        await self._page.screenshot(path=path, full_page=full_page)

    async def render_to_pdf(self, path: str) -> None:
        await self._page.pdf(path=path, format="A4", print_background=True)

    async def content(self) -> str:
        return await self._page.content()

    async def title(self) -> str:
        return (await self._page.title()) or ""

    async def body_text(self) -> str:
        return await self._page.inner_text("body")


class BrowserSession:
    """
    Persistent-profile Chromium session.

    Usage::

        async with BrowserSession("pw-profile-ebay", headless=True) as page:
            await page.navigate("https://www.ebay.com/")
    """

    def __init__(
        self,
        profile_name: str,
        headless: bool = True,
        profiles_dir: Optional[str] = None,
        viewport: Optional[dict] = None,
    ):
        self.profile_dir = Path(profiles_dir or settings.profiles_dir) / profile_name
        self.headless = headless
        self.viewport = viewport or DEFAULT_VIEWPORT
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self.page: Optional[PlaywrightPage] = None

    async def start(self) -> PlaywrightPage:
        self.profile_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Launching browser with profile: {self.profile_dir} (headless: {self.headless})")

        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            str(self.profile_dir),
            headless=self.headless,
            viewport=self.viewport,
            args=LAUNCH_ARGS,
        )
        self.page = PlaywrightPage(await self._context.new_page())
        return self.page

    async def close(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                logger.warning(f"Error closing browser context: {e}")
            self._context = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self.page = None

    async def __aenter__(self) -> PlaywrightPage:
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
