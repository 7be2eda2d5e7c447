"""
Network Observer Service.

Watches one render job's network traffic: times every request/response pair
and captures backend API calls (requests to the marker domain that carry an
API key or authorization header) in request-issue order.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Union

from ..models import CapturedCall
from .driver import REQUEST, RESPONSE, BrowserSession, NetworkRequest, NetworkResponse
from .metrics import MetricsCollector

logger = logging.getLogger("crawly.network")

AUTH_HEADER_NAMES = frozenset({"apikey", "authorization"})


def is_backend_api_call(url: str, headers: Mapping[str, str], marker: str) -> bool:
    """
    Check whether a request is a backend API call.

    Both conditions are required: the URL contains the marker, and a
    non-empty `apikey` or `authorization` header (any case) is present.
    """
    if marker not in url:
        return False
    return any(name.lower() in AUTH_HEADER_NAMES and value for name, value in headers.items())


@dataclass
class _PendingRequest:
    method: str
    started: float


class NetworkObserver:
    """
    Job-scoped network listener.

    With key_policy="url" in-flight timings are keyed by URL, so two
    concurrent requests for the same URL share one slot and the later one
    overwrites the earlier one's start time. key_policy="request" keys by
    request identity instead.
    """

    def __init__(
        self,
        marker: str = "supabase",
        slow_request_threshold_ms: int = 5000,
        key_policy: str = "url",
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if key_policy not in ("url", "request"):
            raise ValueError(f"Unknown network timing key policy: {key_policy}")
        self.marker = marker
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.key_policy = key_policy
        self.metrics = metrics
        self._clock = clock
        self._pending: Dict[Union[str, int], _PendingRequest] = {}
        self._calls: List[CapturedCall] = []
        self._session: Optional[BrowserSession] = None

    def _key(self, url: str, request_id: int) -> Union[str, int]:
        return url if self.key_policy == "url" else request_id

    def attach(self, session: BrowserSession) -> None:
        session.on(REQUEST, self.on_request)
        session.on(RESPONSE, self.on_response)
        self._session = session

    def detach(self) -> None:
        if self._session is None:
            return
        self._session.off(REQUEST, self.on_request)
        self._session.off(RESPONSE, self.on_response)
        self._session = None

    def on_request(self, request: NetworkRequest) -> None:
        self._pending[self._key(request.url, request.request_id)] = _PendingRequest(
            method=request.method,
            started=self._clock(),
        )

        if is_backend_api_call(request.url, request.headers, self.marker):
            self._calls.append(
                CapturedCall(
                    url=request.url,
                    method=request.method,
                    headers=dict(request.headers),
                    post_data=request.post_data,
                )
            )

    def on_response(self, response: NetworkResponse) -> None:
        pending = self._pending.pop(self._key(response.url, response.request_id), None)
        if pending is None:
            return

        duration_ms = int((self._clock() - pending.started) * 1000)
        logger.debug(f"Network request: {pending.method} {response.url} - {response.status} ({duration_ms}ms)")
        if duration_ms > self.slow_request_threshold_ms:
            logger.warning(f"SLOW REQUEST detected: {response.url} took {duration_ms}ms")
            if self.metrics is not None:
                self.metrics.record_slow_request()

    @property
    def captured_calls(self) -> List[CapturedCall]:
        return list(self._calls)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def finalize(self) -> List[CapturedCall]:
        """Stop listening and return the captured calls in request order."""
        self.detach()
        return list(self._calls)
