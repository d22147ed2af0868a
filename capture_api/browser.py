from typing import Optional, Sequence

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .log import log_info, log_warning


class RenderingContext:
    """One isolated browser context with its single page, checked out from the pool."""

    def __init__(self, context: BrowserContext, page: Page, slot: int):
        self.context = context
        self.page = page
        self.slot = slot
        self.uses = 0

    @property
    def is_closed(self) -> bool:
        return self.page.is_closed()

    async def reset(self) -> None:
        """Drop routes, cookies, permissions and headers left behind by the previous task."""
        await self.context.unroute_all(behavior="ignoreErrors")
        await self.context.clear_cookies()
        await self.context.clear_permissions()
        await self.page.set_extra_http_headers({})

    async def close(self) -> None:
        try:
            await self.context.close()
        except Exception as e:
            log_warning(f"[POOL] Error closing rendering context {self.slot}: {e}")

    def __repr__(self) -> str:
        return f"<RenderingContext slot={self.slot} uses={self.uses}>"


class BrowserSession:
    """Owns the Playwright driver and the Chromium process the contexts live in."""

    def __init__(self, browser_args: Sequence[str] = (), headless: bool = True):
        self.browser_args = list(browser_args)
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=self.browser_args,
        )
        log_info(f"Chromium {self._browser.version} launched")

    async def new_context(self, slot: int) -> RenderingContext:
        if self._browser is None:
            await self.start()
        # service worker fetches bypass context.route
        context = await self._browser.new_context(service_workers="block")
        page = await context.new_page()
        return RenderingContext(context, page, slot)

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            finally:
                self._browser = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            finally:
                self._playwright = None
        log_info("Chromium stopped")
