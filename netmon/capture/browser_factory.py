"""Browser provider for DevTools-enabled Chromium instances.

This module provides the BrowserProvider class that finds a browser already
listening on a remote debugging port, or launches one through Playwright,
and reports the page websocket the event channel should connect to.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import aiohttp
from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from .errors import CaptureStartError

logger = logging.getLogger(__name__)

DEFAULT_CDP_PORT = 9222


@dataclass(frozen=True)
class EndpointInfo:
    """Where the event channel should connect."""
    ws_url: str
    port: int
    browser_already_running: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BrowserConfig:
    """Configuration for launching a DevTools-enabled browser."""

    def __init__(
        self,
        headless: bool = False,
        slow_mo: int = 0,
        host: str = "localhost",
        probe_timeout: float = 2.0,
        launch_wait_attempts: int = 20,
        launch_wait_interval: float = 0.25,
        extra_args: Optional[List[str]] = None,
    ):
        """Initialize browser configuration.

        Args:
            headless: Run browser in headless mode
            slow_mo: Slow down operations by specified milliseconds
            host: Host the remote debugging port listens on
            probe_timeout: Seconds allowed for each DevTools HTTP probe
            launch_wait_attempts: Probes made after launch before giving up
            launch_wait_interval: Seconds between post-launch probes
            extra_args: Additional Chromium command line switches
        """
        self.headless = headless
        self.slow_mo = slow_mo
        self.host = host
        self.probe_timeout = probe_timeout
        self.launch_wait_attempts = launch_wait_attempts
        self.launch_wait_interval = launch_wait_interval
        self.extra_args = extra_args or []

    def to_browser_options(self, port: int) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        return {
            'headless': self.headless,
            'slow_mo': self.slow_mo,
            'args': [f"--remote-debugging-port={port}", *self.extra_args],
        }


class BrowserProvider:
    """Reuses or launches the browser whose network traffic is captured."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

    async def _fetch_json(self, port: int, path: str) -> Any:
        """GET a DevTools HTTP endpoint, returning None if unreachable."""
        url = f"http://{self.config.host}:{port}{path}"
        timeout = aiohttp.ClientTimeout(total=self.config.probe_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        return None
                    return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"DevTools probe {url} failed: {e}")
            return None

    async def find_page_endpoint(self, port: int) -> Optional[str]:
        """Return the websocket URL of the first page target on the port."""
        version = await self._fetch_json(port, "/json/version")
        if not isinstance(version, dict) or not version.get("webSocketDebuggerUrl"):
            return None

        targets = await self._fetch_json(port, "/json/list")
        if not isinstance(targets, list):
            return None
        for target in targets:
            if isinstance(target, dict) and target.get("type", "page") == "page":
                ws_url = target.get("webSocketDebuggerUrl")
                if ws_url:
                    return ws_url
        return None

    async def ensure_running(self, port: int = DEFAULT_CDP_PORT) -> EndpointInfo:
        """Make sure a browser with a page target listens on the port.

        Args:
            port: Remote debugging port

        Returns:
            EndpointInfo for the page websocket

        Raises:
            CaptureStartError: If no browser can be reached or launched
        """
        ws_url = await self.find_page_endpoint(port)
        if ws_url:
            logger.info(f"Reusing browser already running on port {port}")
            return EndpointInfo(ws_url=ws_url, port=port, browser_already_running=True)

        logger.info(f"No browser on port {port}, launching Chromium")
        await self._launch(port)

        for _ in range(self.config.launch_wait_attempts):
            ws_url = await self.find_page_endpoint(port)
            if ws_url:
                return EndpointInfo(ws_url=ws_url, port=port, browser_already_running=False)
            await asyncio.sleep(self.config.launch_wait_interval)

        await self.shutdown()
        raise CaptureStartError(f"Launched browser exposes no page target on port {port}")

    async def _launch(self, port: int) -> None:
        if self.browser is not None:
            await self.shutdown()

        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                **self.config.to_browser_options(port)
            )
            self.context = await self.browser.new_context()
            page = await self.context.new_page()
            await page.goto("about:blank")
            logger.info(f"Browser launched (headless={self.config.headless}, port={port})")
        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            await self.shutdown()
            raise CaptureStartError(f"Failed to launch browser: {e}") from e

    async def shutdown(self) -> None:
        """Close a browser this provider launched; reused browsers stay open."""
        try:
            if self.context is not None:
                await self.context.close()
            if self.browser is not None:
                await self.browser.close()
            if self.playwright is not None:
                await self.playwright.stop()
        except Exception as e:
            logger.error(f"Error shutting down browser: {e}")
        finally:
            self.context = None
            self.browser = None
            self.playwright = None

    @property
    def owns_browser(self) -> bool:
        return self.browser is not None

    def __repr__(self) -> str:
        return (
            f"BrowserProvider(headless={self.config.headless}, "
            f"owns_browser={self.owns_browser})"
        )
