"""
Browser Driver Contract.

Engine-neutral interface the render core drives. A BrowserEngine hands out
BrowserSessions; each session is one isolated browsing context with its own
publish/subscribe event bus. Any engine implementing these classes can back
the execution pool.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

logger = logging.getLogger("crawly.driver")

EventHandler = Callable[[Any], None]

REQUEST = "request"
RESPONSE = "response"
REQUEST_FAILED = "requestfailed"
LOAD = "load"
DOM_CONTENT_LOADED = "domcontentloaded"
CONSOLE = "console"
PAGE_ERROR = "pageerror"


@dataclass
class NetworkRequest:
    """An outgoing request as seen by the session."""

    request_id: int
    url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    post_data: Optional[str] = None
    failure: Optional[str] = None


@dataclass
class NetworkResponse:
    """A response received for an earlier request."""

    request_id: int
    url: str
    status: int


@dataclass
class NavigationResponse:
    """Main document response of a navigation."""

    status: int
    headers: Dict[str, str]
    url: str


@dataclass
class ConsoleMessage:
    type: str
    text: str


class BrowserSession(ABC):
    """
    One browsing context (cookies, headers, interception state, one page).

    Owned by at most one render job at a time. Subscribers registered with
    on() receive events synchronously in registration order; a failing
    subscriber is logged and does not affect the others.
    """

    def __init__(self, session_id: int):
        self.session_id = session_id
        self.uses = 0
        self.healthy = True
        self._listeners: Dict[str, List[EventHandler]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Event bus
    # ------------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        self._listeners[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Listener for '{event}' failed on session {self.session_id}")

    def mark_unhealthy(self) -> None:
        """Flag the session so the pool discards it instead of reusing it."""
        self.healthy = False

    @property
    def is_usable(self) -> bool:
        return self.healthy

    # ------------------------------------------------------------------
    # Engine operations
    # ------------------------------------------------------------------

    @abstractmethod
    async def set_user_agent(self, user_agent: str) -> None:
        ...

    @abstractmethod
    async def set_extra_headers(self, headers: Dict[str, str]) -> None:
        """Replace all extra headers with the given mapping."""

    @abstractmethod
    async def set_request_interception(self, enabled: bool) -> None:
        """Route every request through the session, always continuing it."""

    @abstractmethod
    async def goto(self, url: str, timeout_ms: int) -> NavigationResponse:
        ...

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        ...

    @abstractmethod
    async def type(self, selector: str, value: str) -> None:
        ...

    @abstractmethod
    async def click(self, selector: str) -> None:
        ...

    @abstractmethod
    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        ...

    @abstractmethod
    def expect_navigation(self, timeout_ms: int) -> AsyncContextManager[None]:
        """
        Wait for a navigation triggered inside the block.

        The wait is armed on entry, so navigations started by the block body
        are never missed. Raises RenderTimeoutError on exit if no navigation
        settles within timeout_ms.
        """

    @abstractmethod
    async def content(self) -> str:
        ...

    @property
    @abstractmethod
    def url(self) -> str:
        ...

    @abstractmethod
    async def reset(self) -> None:
        """Return the session to a neutral state (no cookies, blank page)."""

    @abstractmethod
    async def close(self) -> None:
        ...


class BrowserEngine(ABC):
    """Factory for browser sessions."""

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def new_session(self) -> BrowserSession:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
