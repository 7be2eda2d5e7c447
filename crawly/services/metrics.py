"""
Render Metrics Service.

Process-wide counters owned by the application lifespan and injected into
the pool and executor, plus a periodic reporter that logs them.
"""

import asyncio
import logging
from typing import Dict, Optional

logger = logging.getLogger("crawly.metrics")


class MetricsCollector:
    """Counters for served renders, failures and slow operations."""

    def __init__(self):
        self.served = 0
        self.errors = 0
        self.form_errors = 0
        self.slow_requests = 0
        self.slow_navigations = 0
        self.contexts_created = 0
        self.contexts_discarded = 0

    def record_served(self) -> None:
        self.served += 1

    def record_error(self) -> None:
        self.errors += 1

    def record_form_error(self) -> None:
        self.form_errors += 1

    def record_slow_request(self) -> None:
        self.slow_requests += 1

    def record_slow_navigation(self) -> None:
        self.slow_navigations += 1

    def record_context_created(self) -> None:
        self.contexts_created += 1

    def record_context_discarded(self) -> None:
        self.contexts_discarded += 1

    def snapshot(self) -> Dict[str, int]:
        return {
            "served": self.served,
            "errors": self.errors,
            "form_errors": self.form_errors,
            "slow_requests": self.slow_requests,
            "slow_navigations": self.slow_navigations,
            "contexts_created": self.contexts_created,
            "contexts_discarded": self.contexts_discarded,
        }


class StatsReporter:
    """Logs served/error counts every `interval_seconds` until stopped."""

    def __init__(self, metrics: MetricsCollector, interval_seconds: float = 60):
        self.metrics = metrics
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def log_stats(self) -> None:
        logger.info(f"Served Requests: {self.metrics.served}")
        logger.info(f"Error Count: {self.metrics.errors}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.log_stats()

    def start(self) -> None:
        if self._task is not None or self.interval_seconds <= 0:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
