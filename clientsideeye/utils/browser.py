"""
Rendering surface capabilities and the Playwright backend that provides them
"""

import time
import logging
from typing import Any, Callable, List, Optional, Protocol
from dataclasses import dataclass

from playwright.async_api import async_playwright, Browser, BrowserContext, ElementHandle, Page, Request
from playwright.async_api import Error as PlaywrightError

from ..config import BrowserConfig
from ..errors import ElementEvaluationError, NavigationError
from ..identities import SessionCapsule

logger = logging.getLogger(__name__)

OUTER_HTML_SCRIPT = "(el) => el.outerHTML"
FIND_BY_ID_SCRIPT = "(id) => document.getElementById(id)"


@dataclass
class RequestEvent:
    """One outgoing request observed on the page."""
    ts: int
    method: str
    url: str
    resource_type: str


class ElementRef(Protocol):
    """A handle to one element on the rendering surface."""

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a function against the element; raises ElementEvaluationError on failure."""
        ...

    async def outer_html(self) -> str:
        ...


class RenderingSurface(Protocol):
    """The capability set the audit core needs from a browser automation engine."""

    async def navigate(self, url: str, wait_ms: int) -> str:
        """Load the URL, wait for content, and return the resolved URL."""
        ...

    async def query_all(self, selector: str) -> List[ElementRef]:
        ...

    async def find_by_id(self, element_id: str) -> Optional[ElementRef]:
        ...

    def on_request(self, callback: Callable[[RequestEvent], None]) -> None:
        ...

    async def settle(self, ms: int) -> None:
        ...

    async def wait_until_closed(self) -> None:
        ...

    async def __aenter__(self) -> 'RenderingSurface':
        ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        ...


class PlaywrightElement:
    """ElementRef backed by a Playwright element handle."""

    def __init__(self, handle: ElementHandle):
        self._handle = handle

    @property
    def handle(self) -> ElementHandle:
        return self._handle

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._handle.evaluate(script, arg)
        except PlaywrightError as e:
            raise ElementEvaluationError(str(e)) from e

    async def outer_html(self) -> str:
        return await self.evaluate(OUTER_HTML_SCRIPT)


class PlaywrightSurface:
    """Chromium page driven through Playwright, with auth material injected."""

    def __init__(self, browser_config: BrowserConfig, session: SessionCapsule):
        """
        Initialize the surface.

        Args:
            browser_config: Launch options (headless, devtools, viewport)
            session: Headers, cookies and storage state for the browsing context
        """
        self.browser_config = browser_config
        self.session = session
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._listeners: List[Callable[[RequestEvent], None]] = []

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Surface not started")
        return self._page

    async def start(self):
        """Launch the browser, open a context with auth material, and open a page."""
        if self._page is not None:
            return

        headless = self.browser_config.headless
        args = []
        if self.browser_config.devtools and not headless:
            args.append('--auto-open-devtools-for-tabs')

        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=headless, args=args)

            context_options = {
                'viewport': {
                    'width': self.browser_config.viewport_width,
                    'height': self.browser_config.viewport_height
                }
            }
            if self.session.storage_state:
                context_options['storage_state'] = self.session.storage_state

            self._context = await self._browser.new_context(**context_options)

            if self.session.headers:
                await self._context.set_extra_http_headers(self.session.headers)
            if self.session.cookies:
                await self._context.add_cookies(self.session.cookies)

            self._page = await self._context.new_page()
            self._page.on('request', self._handle_request)
        except BaseException:
            await self.close()
            raise

        logger.info(f"Browser surface started (headless={headless}, auth={self.session.auth_type})")

    async def close(self):
        """Close the browser and stop Playwright."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self._context = None
        self._page = None

    def _handle_request(self, request: Request):
        event = RequestEvent(
            ts=int(time.time() * 1000),
            method=request.method,
            url=request.url,
            resource_type=request.resource_type
        )
        for callback in self._listeners:
            callback(event)

    def on_request(self, callback: Callable[[RequestEvent], None]) -> None:
        self._listeners.append(callback)

    async def navigate(self, url: str, wait_ms: int) -> str:
        """
        Load a URL and wait for the page to settle.

        Args:
            url: Target URL
            wait_ms: Extra delay after DOMContentLoaded

        Returns:
            URL the page ended up on

        Raises:
            NavigationError: If the page fails to load
        """
        try:
            await self.page.goto(url, wait_until='domcontentloaded')
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e

        await self.page.wait_for_timeout(wait_ms)
        return self.page.url

    async def query_all(self, selector: str) -> List[PlaywrightElement]:
        handles = await self.page.query_selector_all(selector)
        return [PlaywrightElement(handle) for handle in handles]

    async def find_by_id(self, element_id: str) -> Optional[PlaywrightElement]:
        try:
            js_handle = await self.page.evaluate_handle(FIND_BY_ID_SCRIPT, element_id)
        except PlaywrightError as e:
            raise ElementEvaluationError(str(e)) from e

        element = js_handle.as_element()
        if element is None:
            await js_handle.dispose()
            return None
        return PlaywrightElement(element)

    async def settle(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)

    async def wait_until_closed(self) -> None:
        """Block until the user closes the page."""
        await self.page.wait_for_event('close', timeout=0)
