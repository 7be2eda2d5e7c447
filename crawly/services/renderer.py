"""
Render Job Executor.

Runs one render job end-to-end on a borrowed browser session:
configure -> observe -> navigate -> (optionally) fill a form -> capture.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

from ..config import Settings, settings as default_settings
from ..errors import FormError, RenderError, RenderTimeoutError
from ..models import RenderJob, RenderResult
from .driver import (
    CONSOLE,
    DOM_CONTENT_LOADED,
    LOAD,
    PAGE_ERROR,
    REQUEST_FAILED,
    BrowserSession,
    NavigationResponse,
)
from .form_automator import FormAutomator, FormState
from .metrics import MetricsCollector
from .network_observer import NetworkObserver

logger = logging.getLogger("crawly.renderer")

DEFAULT_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}


class RenderJobExecutor:
    """
    Executes render jobs against sessions lent by the execution pool.

    Navigation errors and timeouts fail the job. Form errors are logged and
    the job completes with whatever the page shows.
    """

    def __init__(self, config: Optional[Settings] = None, metrics: Optional[MetricsCollector] = None):
        self.config = config or default_settings
        self.metrics = metrics or MetricsCollector()

    def build_headers(self, job: RenderJob) -> Dict[str, str]:
        """Default browser headers overlaid with the job's headers."""
        headers: Dict[str, str] = {}
        if self.config.stealth_enabled:
            headers.update(DEFAULT_BROWSER_HEADERS)
        if job.headers:
            headers.update(job.headers)
        return headers

    async def execute(self, job: RenderJob, session: BrowserSession) -> RenderResult:
        """
        Render a page and assemble the result.

        Args:
            job: The render job
            session: Browser session exclusively owned for this job

        Returns:
            RenderResult with HTML, status, headers, final URL and captured calls

        Raises:
            NavigationError: If the page could not be loaded
            RenderTimeoutError: If navigation exceeded its timeout
            ContextError: If the session became unusable
            RenderError: For any other failure
        """
        start_time = time.time()
        timeout_ms = job.timeout_ms or self.config.default_timeout_ms
        logger.debug(f"Starting render for URL: {job.url} (session {session.session_id})")

        observer = NetworkObserver(
            marker=self.config.backend_api_marker,
            slow_request_threshold_ms=self.config.slow_request_threshold_ms,
            key_policy=self.config.network_timing_key,
            metrics=self.metrics,
        )

        try:
            logger.debug("Setting user agent and headers")
            await session.set_user_agent(self.config.user_agent)
            await session.set_extra_headers(self.build_headers(job))

            session.clear_listeners()
            observer.attach(session)
            self._attach_debug_listeners(session, job.url)
            await session.set_request_interception(True)

            navigation = await self._navigate(session, job.url, timeout_ms)

            if job.wants_form:
                await self._submit_form(session, job)

            logger.debug("Getting final URL and page content")
            final_url = session.url
            html = await session.content()

        except RenderError as e:
            if isinstance(e, RenderTimeoutError):
                session.mark_unhealthy()
            raise
        except Exception as e:
            logger.exception(f"Error rendering {job.url}")
            session.mark_unhealthy()
            raise RenderError(f"Failed to render {job.url}: {e}") from e
        finally:
            observer.detach()
            session.clear_listeners()

        captured_calls = observer.finalize()
        load_time = time.time() - start_time

        url_string = f"'{job.url}'"
        if final_url != job.url:
            url_string = f"'{job.url}' -> '{final_url}'"
        logger.info(f"Fetched {url_string} status: {navigation.status} ({load_time:.3f}s)")
        logger.debug(f"Backend API calls detected: {len(captured_calls)}")

        return RenderResult(
            html=html,
            status_code=navigation.status,
            headers=navigation.headers,
            final_url=final_url,
            captured_calls=captured_calls,
        )

    async def _navigate(self, session: BrowserSession, url: str, timeout_ms: int) -> NavigationResponse:
        """Navigate with a warning at half the timeout and a hard outer bound."""
        logger.debug(f"Navigating to URL: {url} with timeout: {timeout_ms}ms")
        loop = asyncio.get_running_loop()
        navigation_start = time.time()

        slow_warning = loop.call_later(timeout_ms / 2000, self._warn_slow_navigation, url, timeout_ms)
        hard_limit = (timeout_ms + self.config.stage_timeout_grace_ms) / 1000
        try:
            navigation = await asyncio.wait_for(session.goto(url, timeout_ms=timeout_ms), timeout=hard_limit)
        except asyncio.TimeoutError as e:
            raise RenderTimeoutError(f"Page load timeout after {timeout_ms}ms: {url}") from e
        finally:
            slow_warning.cancel()

        navigation_time = int((time.time() - navigation_start) * 1000)
        logger.debug(f"Page navigation completed in {navigation_time}ms, status: {navigation.status}")
        return navigation

    def _warn_slow_navigation(self, url: str, timeout_ms: int) -> None:
        logger.warning(f"Navigation taking longer than {timeout_ms // 2}ms for: {url}")
        self.metrics.record_slow_navigation()

    async def _submit_form(self, session: BrowserSession, job: RenderJob) -> None:
        logger.debug(f"Form submission requested - selector: {job.form_selector}")
        automator = FormAutomator.from_settings(self.config)
        try:
            await automator.fill_and_submit(
                session,
                job.form_selector,
                job.form_data,
                submit_selector=job.submit_selector,
            )
        except FormError as e:
            logger.warning(f"Form submission error for {job.url}: {e}")
            self.metrics.record_form_error()
            if e.stage == FormState.WAITING_FOR_NAVIGATION.value:
                session.mark_unhealthy()

    @staticmethod
    def _attach_debug_listeners(session: BrowserSession, url: str) -> None:
        session.on(LOAD, lambda _: logger.debug(f"Page load event fired for: {url}"))
        session.on(DOM_CONTENT_LOADED, lambda _: logger.debug(f"DOMContentLoaded event fired for: {url}"))
        session.on(
            REQUEST_FAILED,
            lambda request: logger.debug(
                f"Request failed: {request.url} - {request.failure or 'Unknown error'}"
            ),
        )
        session.on(CONSOLE, lambda msg: logger.debug(f"Page console {msg.type}: {msg.text}"))
        session.on(PAGE_ERROR, lambda error: logger.debug(f"Page error: {error}"))
