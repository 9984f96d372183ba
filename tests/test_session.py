"""
Tests for CrawlSession against a scripted stand-in for Playwright.

The fake page plays both the controller and the embedded app: each
navigate command schedules the matching snapshot callback, the way the
real bridge delivers them asynchronously.

Covers:
  1. Records come back in route order, one navigation at a time
  2. Empty route list completes after the bootstrap
  3. A silent app ends in SnapshotTimeout after the configured bound
  4. Launch errors become LaunchFailure
  5. The browser is closed on every exit path
"""

import asyncio
import time

import pytest
from playwright.async_api import Error as PlaywrightError

from spa_snapshot.errors import LaunchFailure, ProtocolViolation, SnapshotTimeout
from spa_snapshot.protocol import SessionState, SnapshotRecord
from spa_snapshot.run_config import SnapshotRunConfig
from spa_snapshot.session import CrawlSession, browser_args


def render(path):
    return f"<html><body>{path}</body></html>"


class FakePage:
    def __init__(self, app, duplicate=False):
        self.app = app
        self.duplicate = duplicate
        self.functions = {}
        self.navigations = []
        self.content = None
        self.routed = None
        self.in_flight = 0
        self.max_in_flight = 0
        self._tasks = []

    def on(self, event, handler):
        pass

    async def route(self, pattern, handler):
        self.routed = pattern

    async def expose_function(self, name, fn):
        self.functions[name] = fn

    async def set_content(self, html):
        self.content = html

    def _schedule(self, coro):
        self._tasks.append(asyncio.get_running_loop().create_task(coro))

    async def _answer(self, path, token):
        html = self.app(path)
        if html is None:
            return
        self.in_flight -= 1
        await self.functions["onSnapshot"](html, token)

    async def evaluate(self, expression, arg=None):
        if "startSnapshotSession" in expression:
            self.in_flight += 1
            self._schedule(self._answer("/", -1))
        elif "sendNavigate" in expression:
            path, token = arg
            self.navigations.append(path)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            self._schedule(self._answer(path, token))
            if self.duplicate:
                self._schedule(self.functions["onSnapshot"](self.app(path), token))
        elif "completeSession" in expression:
            self._schedule(self.functions["onComplete"]())


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False
        self.viewport = None

    async def new_page(self, viewport=None):
        self.viewport = viewport
        return self.page

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, browser, launch_error=None):
        self.browser = browser
        self.launch_error = launch_error
        self.launch_kwargs = None

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        if self.launch_error:
            raise self.launch_error
        return self.browser


class FakePlaywright:
    """Callable standing in for ``async_playwright``."""

    def __init__(self, page, launch_error=None):
        self.browser = FakeBrowser(page)
        self.chromium = FakeChromium(self.browser, launch_error)

    def __call__(self):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.fixture
def config():
    return SnapshotRunConfig(completion_timeout_s=5.0, headless=True)


def make_session(routes, fake, config):
    return CrawlSession(
        routes,
        "http://127.0.0.1:5123",
        "/opt/bundle/chrome",
        config=config,
        playwright_factory=fake,
    )


class TestRun:

    def test_records_in_route_order(self, config):
        page = FakePage(render)
        fake = FakePlaywright(page)
        session = make_session(["about", "contact/us"], fake, config)

        records = asyncio.run(session.run())

        assert records == [
            SnapshotRecord("about", render("/about?spa-snapshot")),
            SnapshotRecord("contact/us", render("/contact/us?spa-snapshot")),
        ]
        assert page.navigations == ["/about?spa-snapshot", "/contact/us?spa-snapshot"]
        assert page.max_in_flight == 1
        assert session.state is SessionState.COMPLETED
        assert session.protocol.messages_received == 3
        assert fake.browser.closed

    def test_launch_arguments(self, config):
        page = FakePage(render)
        fake = FakePlaywright(page)
        asyncio.run(make_session(["a"], fake, config).run())

        kwargs = fake.chromium.launch_kwargs
        assert kwargs["executable_path"] == "/opt/bundle/chrome"
        assert kwargs["headless"] is True
        assert "--disable-cache" in kwargs["args"]
        assert fake.browser.viewport == {"width": 1200, "height": 800}
        assert page.routed == "**/*"
        assert '"http://127.0.0.1:5123/?spa-snapshot="' in page.content

    def test_empty_route_list(self, config):
        page = FakePage(render)
        fake = FakePlaywright(page)
        session = make_session([], fake, config)

        assert asyncio.run(session.run()) == []
        assert page.navigations == []
        assert fake.browser.closed

    def test_timeout(self):
        config = SnapshotRunConfig(completion_timeout_s=0.3)
        page = FakePage(lambda path: None if "contact" in path else render(path))
        fake = FakePlaywright(page)
        session = make_session(["about", "contact"], fake, config)

        start = time.monotonic()
        with pytest.raises(SnapshotTimeout) as info:
            asyncio.run(session.run())
        elapsed = time.monotonic() - start

        assert 0.3 <= elapsed < 0.3 + 2.0
        assert info.value.captured == 1
        assert info.value.expected == 2
        assert session.state is SessionState.TIMED_OUT
        assert fake.browser.closed

    def test_launch_failure(self, config):
        page = FakePage(render)
        fake = FakePlaywright(page, launch_error=PlaywrightError("spawn ENOENT"))
        session = make_session(["about"], fake, config)

        with pytest.raises(LaunchFailure) as info:
            asyncio.run(session.run())

        assert isinstance(info.value.__cause__, PlaywrightError)
        assert session.state is SessionState.FAILED

    def test_duplicate_snapshot_is_a_violation(self, config):
        page = FakePage(render, duplicate=True)
        fake = FakePlaywright(page)
        session = make_session(["about", "contact"], fake, config)

        with pytest.raises(ProtocolViolation):
            asyncio.run(session.run())

        assert session.state is SessionState.FAILED
        assert fake.browser.closed


class TestBrowserArgs:

    def test_window_size(self):
        args = browser_args(SnapshotRunConfig(window_width=800, window_height=600))
        assert "--window-size=800,600" in args
        assert "--disk-cache-size=0" in args
