"""
Crawl Session
=============
One browser, one page, one ordered pass over the route list.

Architecture:
- Playwright Chromium launched from the provisioned executable
- HTTP cache disabled (launch flags + request routing)
- Controller page embeds the app in an iframe and relays messages
- ``CrawlProtocol`` owns the cursor; exactly one navigation in flight
- A single timeout race bounds the whole pass
- The browser is closed on every exit path
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from .controller import COMPLETE_CALLBACK, SNAPSHOT_CALLBACK, render_controller
from .errors import LaunchFailure, ProtocolViolation, SnapshotTimeout
from .protocol import AllDone, Command, CrawlProtocol, Navigate, SnapshotRecord
from .run_config import SnapshotRunConfig

logger = logging.getLogger(__name__)

# Every navigation must render fresh; nothing may leak between runs
_CACHE_DISABLING_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-cache",
    "--disk-cache-size=0",
    "--disable-application-cache",
    "--disable-offline-load-stale-cache",
    "--disable-gpu-shader-disk-cache",
    "--media-cache-size=0",
]


def browser_args(config: SnapshotRunConfig) -> List[str]:
    args = list(_CACHE_DISABLING_ARGS)
    if os.name != "nt":
        args.append("--disk-cache-dir=/dev/null")
    args.append(f"--window-size={config.window_width},{config.window_height}")
    return args


class CrawlSession:
    """
    Captures one snapshot per route from an app served at ``base_url``.

    Usage::

        session = CrawlSession(routes, "http://127.0.0.1:5123", exe_path)
        records = await session.run()
    """

    def __init__(
        self,
        routes: Sequence[str],
        base_url: str,
        executable_path: Union[str, Path],
        headless: Optional[bool] = None,
        config: Optional[SnapshotRunConfig] = None,
        playwright_factory: Callable = async_playwright,
    ):
        self.config = config or SnapshotRunConfig()
        self.routes = list(routes)
        self.base_url = base_url
        self.executable_path = Path(executable_path)
        self.headless = self.config.headless if headless is None else headless
        self.timeout_s = self.config.completion_timeout_s
        self.protocol = CrawlProtocol(self.routes, self.config.marker_param)

        self._playwright_factory = playwright_factory
        self._page: Optional[Page] = None
        self._done: Optional[asyncio.Future] = None

    @property
    def state(self):
        return self.protocol.state

    # ------------------------------------------------------------------
    # Main entry
    # ------------------------------------------------------------------

    async def run(self) -> List[SnapshotRecord]:
        """
        Run the full navigate/snapshot pass.

        Returns:
            One ``SnapshotRecord`` per route, in route order

        Raises:
            LaunchFailure: browser or page could not be set up
            SnapshotTimeout: completion did not arrive in time
            ProtocolViolation: the page sent an unexpected message
        """
        self.protocol.launching()
        self._done = asyncio.get_running_loop().create_future()
        start = time.monotonic()

        async with self._playwright_factory() as playwright:
            browser = await self._launch(playwright)
            try:
                await self._open_controller(browser)
                await self._wait_for_completion()
                records = self.protocol.records
            except BaseException as exc:
                self.protocol.failed(exc)
                raise
            finally:
                if not self._done.done():
                    self._done.cancel()
                await self._close_browser(browser)

        logger.info(
            f"[SESSION] Snapshot sequence fully complete: {len(records)} route(s) "
            f"in {time.monotonic() - start:.1f}s"
        )
        return records

    # ------------------------------------------------------------------
    # Browser management
    # ------------------------------------------------------------------

    async def _launch(self, playwright) -> Browser:
        logger.info(f"[SESSION] Launching browser executable: {self.executable_path}")
        try:
            return await playwright.chromium.launch(
                executable_path=str(self.executable_path),
                headless=self.headless,
                args=browser_args(self.config),
            )
        except (PlaywrightError, OSError) as exc:
            self.protocol.failed(exc)
            raise LaunchFailure(f"Browser failed to start from {self.executable_path}: {exc}") from exc

    async def _open_controller(self, browser: Browser) -> None:
        """Open the page, wire the callbacks and load the controller document."""
        try:
            page = await browser.new_page(
                viewport={
                    "width": self.config.window_width,
                    "height": self.config.window_height,
                },
            )
            self._page = page
            page.on("console", lambda msg: logger.debug(f"[PAGE] {msg.text}"))
            # Routing every request bypasses the HTTP cache
            await page.route("**/*", self._route_handler)
            await page.expose_function(SNAPSHOT_CALLBACK, self._on_snapshot)
            await page.expose_function(COMPLETE_CALLBACK, self._on_complete)
            await page.set_content(render_controller(self.base_url, self.config.marker_param))
            self.protocol.begin()
            logger.info(f"[SESSION] Waiting for app at {self.base_url} ({len(self.routes)} routes)")
            await page.evaluate("() => window.startSnapshotSession()")
        except PlaywrightError as exc:
            raise LaunchFailure(f"Could not attach to browser page: {exc}") from exc

    async def _route_handler(self, route) -> None:
        await route.continue_()

    async def _close_browser(self, browser: Browser) -> None:
        try:
            await browser.close()
        except PlaywrightError as exc:
            logger.debug(f"[SESSION] Browser close raised: {exc}")

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def _wait_for_completion(self) -> None:
        try:
            await asyncio.wait_for(asyncio.shield(self._done), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            self.protocol.timed_out()
            logger.error(
                f"[SESSION] No completion after {self.timeout_s:g}s "
                f"({self.protocol.captured}/{len(self.routes)} captured)"
            )
            raise SnapshotTimeout(self.timeout_s, self.protocol.captured, len(self.routes)) from None

    def _fail(self, exc: BaseException) -> None:
        if not self._done.done():
            self._done.set_exception(exc)

    # ------------------------------------------------------------------
    # Page callbacks
    # ------------------------------------------------------------------

    async def _on_snapshot(self, html=None, token=None) -> None:
        if self._done is None or self._done.done():
            logger.warning("[SESSION] Snapshot arrived after the session ended; ignored")
            return
        try:
            command = self.protocol.on_snapshot(html, token)
            await self._dispatch(command)
        except ProtocolViolation as exc:
            logger.error(f"[SESSION] Protocol violation: {exc}")
            self._fail(exc)
        except PlaywrightError as exc:
            logger.error(f"[SESSION] Page command failed: {exc}")
            self._fail(exc)

    async def _on_complete(self) -> None:
        if self._done is None or self._done.done():
            return
        try:
            self.protocol.on_complete()
        except ProtocolViolation as exc:
            logger.error(f"[SESSION] Protocol violation: {exc}")
            self._fail(exc)
            return
        logger.info("[SESSION] All snapshots complete")
        self._done.set_result(True)

    async def _dispatch(self, command: Command) -> None:
        if isinstance(command, Navigate):
            self.protocol.navigation_sent(command)
            logger.info(f"[SESSION] Navigating to {command.target_path}")
            await self._page.evaluate(
                "([path, token]) => window.sendNavigate(path, token)",
                [command.target_path, command.token],
            )
        elif isinstance(command, AllDone):
            await self._page.evaluate("() => window.completeSession()")
