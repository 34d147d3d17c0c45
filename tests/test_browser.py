"""Tests for the Playwright session factory with Playwright itself stubbed out."""
import pytest

from token_relay.services import browser
from token_relay.services.browser import PlaywrightSession, PlaywrightSessionFactory
from token_relay.services.errors import SessionUnavailable


class StubBrowser:
    def __init__(self, page_error=None):
        self.page_error = page_error
        self.closed = 0

    async def new_page(self):
        if self.page_error is not None:
            raise self.page_error
        return StubPage()

    async def close(self):
        self.closed += 1


class StubPage:
    def __init__(self):
        self.handlers = []

    def on(self, event, handler):
        self.handlers.append((event, handler))

    def remove_listener(self, event, handler):
        self.handlers.remove((event, handler))


class StubChromium:
    def __init__(self, browser_obj=None, launch_error=None):
        self.browser_obj = browser_obj
        self.launch_error = launch_error
        self.headless = None

    async def launch(self, headless=True):
        self.headless = headless
        if self.launch_error is not None:
            raise self.launch_error
        return self.browser_obj


class StubPlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = 0

    async def stop(self):
        self.stopped += 1


def install(monkeypatch, playwright):
    class Starter:
        async def start(self):
            return playwright

    monkeypatch.setattr(browser, "async_playwright", lambda: Starter())


@pytest.mark.asyncio
async def test_opens_session(monkeypatch):
    stub_browser = StubBrowser()
    chromium = StubChromium(stub_browser)
    playwright = StubPlaywright(chromium)
    install(monkeypatch, playwright)

    session = await PlaywrightSessionFactory(headless=False)()

    assert isinstance(session, PlaywrightSession)
    assert chromium.headless is False
    await session.close()
    await session.close()
    assert stub_browser.closed == 1
    assert playwright.stopped == 1


@pytest.mark.asyncio
async def test_launch_failure_is_session_unavailable(monkeypatch):
    playwright = StubPlaywright(StubChromium(launch_error=RuntimeError("Executable doesn't exist")))
    install(monkeypatch, playwright)

    with pytest.raises(SessionUnavailable):
        await PlaywrightSessionFactory()()
    assert playwright.stopped == 1


@pytest.mark.asyncio
async def test_page_failure_closes_browser_and_stops(monkeypatch):
    stub_browser = StubBrowser(page_error=RuntimeError("Target closed"))
    playwright = StubPlaywright(StubChromium(stub_browser))
    install(monkeypatch, playwright)

    with pytest.raises(SessionUnavailable, match="Failed to open new page"):
        await PlaywrightSessionFactory()()
    assert stub_browser.closed == 1
    assert playwright.stopped == 1


@pytest.mark.asyncio
async def test_listeners_are_removed(monkeypatch):
    install(monkeypatch, StubPlaywright(StubChromium(StubBrowser())))
    session = await PlaywrightSessionFactory()()

    async def listener(request):
        return None

    session.on_request_finished(listener)
    assert session._page.handlers == [("requestfinished", listener)]
    session.remove_listeners()
    assert session._page.handlers == []
