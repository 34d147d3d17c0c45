"""Headless browser capability used to reach the token endpoint.

The fetcher only relies on the small protocol below. Production uses
Playwright's Chromium; tests plug in fakes.
"""
import logging
from typing import Any, Awaitable, Callable, Protocol

from playwright.async_api import Browser, Page, Playwright, async_playwright

from token_relay.services.errors import SessionUnavailable

logger = logging.getLogger("token_relay.browser")


class SourceResponse(Protocol):
    @property
    def ok(self) -> bool: ...

    @property
    def status(self) -> int: ...

    async def json(self) -> Any: ...


class FinishedRequest(Protocol):
    @property
    def url(self) -> str: ...

    async def response(self) -> SourceResponse | None: ...


RequestListener = Callable[[FinishedRequest], Awaitable[None] | None]


class HeadlessSession(Protocol):
    async def goto(self, url: str) -> None: ...

    def on_request_finished(self, listener: RequestListener) -> None: ...

    def remove_listeners(self) -> None: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[], Awaitable[HeadlessSession]]


class PlaywrightSession:
    """One browser plus one page. Closing tears down both and Playwright itself."""

    def __init__(self, playwright: Playwright, browser: Browser, page: Page) -> None:
        self._playwright = playwright
        self._browser = browser
        self._page = page
        self._listeners: list[RequestListener] = []
        self._closed = False

    async def goto(self, url: str) -> None:
        await self._page.goto(url)

    def on_request_finished(self, listener: RequestListener) -> None:
        self._listeners.append(listener)
        self._page.on("requestfinished", listener)

    def remove_listeners(self) -> None:
        for listener in self._listeners:
            self._page.remove_listener("requestfinished", listener)
        self._listeners.clear()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightSessionFactory:
    def __init__(self, headless: bool = True) -> None:
        self.headless = headless

    async def __call__(self) -> PlaywrightSession:
        try:
            playwright = await async_playwright().start()
        except Exception as exc:
            logger.error("browser_playwright_start_failed", exc_info=True)
            raise SessionUnavailable("Failed to start playwright") from exc

        try:
            browser = await playwright.chromium.launch(headless=self.headless)
        except Exception as exc:
            logger.error("browser_launch_failed", exc_info=True)
            await playwright.stop()
            raise SessionUnavailable("Failed to launch browser") from exc

        try:
            page = await browser.new_page()
        except Exception as exc:
            logger.error("browser_new_page_failed", exc_info=True)
            try:
                await browser.close()
            finally:
                await playwright.stop()
            raise SessionUnavailable("Failed to open new page") from exc

        logger.debug("browser_session_opened", extra={"extra": {"headless": self.headless}})
        return PlaywrightSession(playwright, browser, page)
