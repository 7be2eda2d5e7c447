"""
Playwright Engine Service.

Launches Chromium through Playwright and hands out one BrowserContext + Page
per session. Translates Playwright events into the session event bus and
Playwright errors into the render error taxonomy.
"""

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Request,
    Response,
    Route,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..config import Settings, settings as default_settings
from ..errors import ContextError, NavigationError, RenderError, RenderTimeoutError
from .driver import (
    CONSOLE,
    DOM_CONTENT_LOADED,
    LOAD,
    PAGE_ERROR,
    REQUEST,
    REQUEST_FAILED,
    RESPONSE,
    BrowserEngine,
    BrowserSession,
    ConsoleMessage,
    NavigationResponse,
    NetworkRequest,
    NetworkResponse,
)

logger = logging.getLogger("crawly.engine")

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--no-first-run",
    "--no-zygote",
    "--deterministic-fetch",
    "--disable-features=IsolateOrigins",
    "--disable-site-isolation-trials",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--memory-pressure-off",
]

# Hides the most common automation fingerprints before any page script runs.
STEALTH_INIT_SCRIPT = """
delete Object.getPrototypeOf(navigator).webdriver;
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""


class PlaywrightSession(BrowserSession):
    """A Playwright BrowserContext with a single Page."""

    def __init__(self, session_id: int, context: BrowserContext, page: Page):
        super().__init__(session_id)
        self._context = context
        self._page = page
        self._user_agent: Optional[str] = None
        self._extra_headers: Dict[str, str] = {}
        self._intercepting = False
        self._wire_page_events()

    def _wire_page_events(self) -> None:
        page = self._page
        page.on("request", self._on_request)
        page.on("response", self._on_response)
        page.on("requestfailed", self._on_request_failed)
        page.on("load", lambda _: self.emit(LOAD, page.url))
        page.on("domcontentloaded", lambda _: self.emit(DOM_CONTENT_LOADED, page.url))
        page.on("console", lambda msg: self.emit(CONSOLE, ConsoleMessage(type=msg.type, text=msg.text)))
        page.on("pageerror", lambda error: self.emit(PAGE_ERROR, str(error)))
        page.on("crash", lambda _: self._on_crash())
        page.on("close", lambda _: self.mark_unhealthy())

    @staticmethod
    def _to_network_request(request: Request) -> NetworkRequest:
        return NetworkRequest(
            request_id=id(request),
            url=request.url,
            method=request.method,
            headers=dict(request.headers),
            post_data=request.post_data,
            failure=request.failure,
        )

    def _on_request(self, request: Request) -> None:
        self.emit(REQUEST, self._to_network_request(request))

    def _on_response(self, response: Response) -> None:
        self.emit(
            RESPONSE,
            NetworkResponse(request_id=id(response.request), url=response.url, status=response.status),
        )

    def _on_request_failed(self, request: Request) -> None:
        self.emit(REQUEST_FAILED, self._to_network_request(request))

    def _on_crash(self) -> None:
        logger.warning(f"Page crashed in session {self.session_id}")
        self.mark_unhealthy()

    @property
    def is_usable(self) -> bool:
        return self.healthy and not self._page.is_closed()

    def _translate(self, exc: PlaywrightError, action: str) -> RenderError:
        if isinstance(exc, PlaywrightTimeout):
            return RenderTimeoutError(f"{action} timed out: {exc.message}")
        if self._page.is_closed():
            self.mark_unhealthy()
            return ContextError(f"Browser session closed during {action}: {exc.message}")
        if action == "navigation":
            return NavigationError(f"Navigation failed: {exc.message}")
        return RenderError(f"{action} failed: {exc.message}")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def _apply_headers(self) -> None:
        headers: Dict[str, str] = {}
        if self._user_agent:
            headers["User-Agent"] = self._user_agent
        headers.update(self._extra_headers)
        try:
            await self._page.set_extra_http_headers(headers)
        except PlaywrightError as e:
            raise self._translate(e, "header configuration") from e

    async def set_user_agent(self, user_agent: str) -> None:
        self._user_agent = user_agent
        await self._apply_headers()

    async def set_extra_headers(self, headers: Dict[str, str]) -> None:
        self._extra_headers = dict(headers)
        await self._apply_headers()

    async def _continue_route(self, route: Route) -> None:
        try:
            await route.continue_()
        except PlaywrightError as e:
            logger.debug(f"Could not continue request {route.request.url}: {e.message}")

    async def set_request_interception(self, enabled: bool) -> None:
        try:
            if enabled and not self._intercepting:
                await self._page.route("**/*", self._continue_route)
                self._intercepting = True
            elif not enabled and self._intercepting:
                await self._page.unroute("**/*", self._continue_route)
                self._intercepting = False
        except PlaywrightError as e:
            raise self._translate(e, "request interception") from e

    # ------------------------------------------------------------------
    # Page actions
    # ------------------------------------------------------------------

    async def goto(self, url: str, timeout_ms: int) -> NavigationResponse:
        try:
            response = await self._page.goto(url, timeout=timeout_ms)
            if response is None:
                raise NavigationError(f"Failed to get response from {url}")
            # Headers come from the first hop of a redirect chain; status from the final one.
            primary = await self._primary_response(response)
        except PlaywrightError as e:
            raise self._translate(e, "navigation") from e

        return NavigationResponse(status=response.status, headers=dict(primary.headers), url=response.url)

    @staticmethod
    async def _primary_response(response: Response) -> Response:
        request = response.request
        if request.redirected_from is None:
            return response
        while request.redirected_from is not None:
            request = request.redirected_from
        first = await request.response()
        return first if first is not None else response

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightError as e:
            raise self._translate(e, f"waiting for '{selector}'") from e

    async def type(self, selector: str, value: str) -> None:
        try:
            await self._page.locator(selector).press_sequentially(value)
        except PlaywrightError as e:
            raise self._translate(e, f"typing into '{selector}'") from e

    async def click(self, selector: str) -> None:
        try:
            await self._page.click(selector)
        except PlaywrightError as e:
            raise self._translate(e, f"clicking '{selector}'") from e

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(expression, arg)
        except PlaywrightError as e:
            raise self._translate(e, "evaluate") from e

    @asynccontextmanager
    async def expect_navigation(self, timeout_ms: int) -> AsyncIterator[None]:
        try:
            async with self._page.expect_navigation(timeout=timeout_ms):
                yield
        except PlaywrightError as e:
            raise self._translate(e, "waiting for navigation") from e

    async def content(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as e:
            raise self._translate(e, "reading content") from e

    @property
    def url(self) -> str:
        return self._page.url

    async def reset(self) -> None:
        try:
            await self.set_request_interception(False)
            self._user_agent = None
            self._extra_headers = {}
            await self._page.set_extra_http_headers({})
            await self._context.clear_cookies()
            await self._page.goto("about:blank")
        except PlaywrightError as e:
            raise self._translate(e, "reset") from e

    async def close(self) -> None:
        await self._context.close()


class PlaywrightEngine(BrowserEngine):
    """
    Owns the Playwright driver and one Chromium browser.

    Sessions are isolated BrowserContexts on the shared browser.
    """

    def __init__(
        self,
        headless: bool = True,
        executable_path: Optional[str] = None,
        viewport_width: int = 1366,
        viewport_height: int = 768,
        user_agent: Optional[str] = None,
        stealth: bool = True,
    ):
        self.headless = headless
        self.executable_path = executable_path
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.user_agent = user_agent
        self.stealth = stealth
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._session_ids = itertools.count(1)
        self._initialized = False

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "PlaywrightEngine":
        config = config or default_settings
        return cls(
            headless=config.browser_headless,
            executable_path=config.chrome_executable_path,
            viewport_width=config.viewport_width,
            viewport_height=config.viewport_height,
            user_agent=config.user_agent,
            stealth=config.stealth_enabled,
        )

    async def start(self) -> None:
        """Launch the browser."""
        async with self._lock:
            if self._initialized:
                return

            logger.info(
                f"Launching Chromium (headless={self.headless}, "
                f"executable={self.executable_path or 'bundled'})"
            )

            self._playwright = await async_playwright().start()
            try:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    executable_path=self.executable_path,
                    args=LAUNCH_ARGS,
                )
            except PlaywrightError:
                await self._playwright.stop()
                self._playwright = None
                raise

            self._initialized = True
            logger.info("Browser launched successfully")

    async def close(self) -> None:
        """Close the browser and stop the driver."""
        async with self._lock:
            if not self._initialized:
                return

            logger.info("Closing browser")

            if self._browser:
                await self._browser.close()
                self._browser = None

            if self._playwright:
                await self._playwright.stop()
                self._playwright = None

            self._initialized = False
            logger.info("Browser closed")

    async def new_session(self) -> PlaywrightSession:
        """
        Open a fresh browser context with one page.

        Raises:
            ContextError: If the browser cannot create the context
        """
        if not self._initialized:
            await self.start()

        try:
            context = await self._browser.new_context(
                viewport={"width": self.viewport_width, "height": self.viewport_height},
                user_agent=self.user_agent,
                java_script_enabled=True,
            )
            if self.stealth:
                await context.add_init_script(script=STEALTH_INIT_SCRIPT)
            page = await context.new_page()
        except PlaywrightError as e:
            raise ContextError(f"Could not open browser context: {e.message}") from e

        session = PlaywrightSession(next(self._session_ids), context, page)
        logger.debug(f"Opened browser session {session.session_id}")
        return session

    @property
    def is_initialized(self) -> bool:
        return self._initialized
