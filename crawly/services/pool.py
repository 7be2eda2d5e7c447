"""
Execution Pool Service.

Bounded-concurrency dispatcher for render jobs. Admits up to
`max_concurrency` jobs at once, queues the rest in FIFO order, lends each
running job an exclusive browser session and takes it back afterwards.

Context lifecycle policies:
    reuse: sessions go back to a free list and serve later jobs until they
           reach `max_context_uses` or end up in an unknown state
    fresh: every job gets a new session that is closed when it finishes
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Optional

from ..config import Settings, settings as default_settings
from ..errors import PoolClosedError, PoolExhaustionError
from ..models import RenderJob, RenderResult
from .driver import BrowserEngine, BrowserSession
from .metrics import MetricsCollector
from .renderer import RenderJobExecutor

logger = logging.getLogger("crawly.pool")

CONTEXT_POLICIES = ("reuse", "fresh")


class ExecutionPool:
    """
    Owns the browser sessions and admits render jobs.

    Invariants:
        active_count <= max_concurrency
        queued jobs exist only while active_count == max_concurrency
        live sessions (idle + checked out) <= max_concurrency
    """

    def __init__(
        self,
        engine: BrowserEngine,
        executor: Optional[RenderJobExecutor] = None,
        max_concurrency: int = 2,
        context_policy: str = "reuse",
        max_context_uses: int = 50,
        isolate_contexts: bool = True,
        max_queue_size: int = 0,
        metrics: Optional[MetricsCollector] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if context_policy not in CONTEXT_POLICIES:
            raise ValueError(f"Unknown context policy: {context_policy}")

        self.engine = engine
        self.metrics = metrics or MetricsCollector()
        self.executor = executor or RenderJobExecutor(metrics=self.metrics)
        self.max_concurrency = max_concurrency
        self.context_policy = context_policy
        self.max_context_uses = max_context_uses
        self.isolate_contexts = isolate_contexts
        self.max_queue_size = max_queue_size

        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._idle_sessions: Deque[BrowserSession] = deque()
        self._idle = asyncio.Event()
        self._idle.set()
        self._closing = False
        self._started = False

    @classmethod
    def from_settings(
        cls,
        engine: BrowserEngine,
        config: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "ExecutionPool":
        config = config or default_settings
        metrics = metrics or MetricsCollector()
        return cls(
            engine,
            executor=RenderJobExecutor(config, metrics),
            max_concurrency=config.max_concurrency,
            context_policy=config.context_policy,
            max_context_uses=config.max_context_uses,
            isolate_contexts=config.isolate_contexts,
            max_queue_size=config.max_queue_size,
            metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the browser engine."""
        if self._started:
            return
        logger.info(
            f"Starting execution pool (max_concurrency={self.max_concurrency}, "
            f"policy={self.context_policy})"
        )
        await self.engine.start()
        self._started = True

    async def shutdown(self) -> None:
        """
        Stop admitting jobs, reject queued jobs, drain active jobs and close
        every session and the engine.
        """
        if self._closing:
            await self._idle.wait()
            return

        self._closing = True
        rejected = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(PoolClosedError("Render service is shutting down; job was not started"))
                rejected += 1
        if rejected:
            logger.warning(f"Rejected {rejected} queued render jobs during shutdown")

        if self._active:
            logger.info(f"Waiting for {self._active} active render jobs to finish")
        await self._idle.wait()

        while self._idle_sessions:
            await self._discard(self._idle_sessions.popleft(), "pool shutdown")

        await self.engine.close()
        self._started = False
        logger.info("Execution pool shut down")

    # ------------------------------------------------------------------
    # Job submission
    # ------------------------------------------------------------------

    async def submit(self, job: RenderJob) -> RenderResult:
        """
        Run a render job once a slot is free.

        Raises:
            PoolClosedError: If the pool is shutting down
            PoolExhaustionError: If the bounded wait queue is full
            RenderError: If the job itself fails
        """
        if self._closing:
            raise PoolClosedError("Render service is shutting down")

        await self._acquire_slot()
        session: Optional[BrowserSession] = None
        try:
            session = await self._checkout()
            result = await self.executor.execute(job, session)
            self.metrics.record_served()
            logger.debug(f"Render completed successfully for: {job.url}")
            return result
        except asyncio.CancelledError:
            if session is not None:
                session.mark_unhealthy()
            raise
        except Exception as e:
            self.metrics.record_error()
            logger.warning(f"Could not get '{job.url}' Error: {e}")
            raise
        finally:
            try:
                if session is not None:
                    await self._checkin(session)
            finally:
                self._release_slot()

    # ------------------------------------------------------------------
    # Slot accounting
    # ------------------------------------------------------------------

    async def _acquire_slot(self) -> None:
        if self._active < self.max_concurrency and not self._waiters:
            self._take_slot()
            return

        if self.max_queue_size and len(self._waiters) >= self.max_queue_size:
            raise PoolExhaustionError(f"Render queue is full ({self.max_queue_size} jobs waiting)")

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"Render job queued ({len(self._waiters)} waiting)")
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            elif waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Slot was handed over just before the cancellation landed.
                self._release_slot()
            raise

    def _take_slot(self) -> None:
        self._active += 1
        self._idle.clear()

    def _release_slot(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Hand the slot straight to the oldest waiter.
                waiter.set_result(None)
                return

        self._active -= 1
        if self._active == 0:
            self._idle.set()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _checkout(self) -> BrowserSession:
        if self.context_policy == "reuse":
            while self._idle_sessions:
                session = self._idle_sessions.popleft()
                if session.is_usable:
                    logger.debug(f"Reusing browser session {session.session_id}")
                    return session
                await self._discard(session, "unusable while idle")

        session = await self.engine.new_session()
        self.metrics.record_context_created()
        logger.debug(f"Created browser session {session.session_id}")
        return session

    async def _checkin(self, session: BrowserSession) -> None:
        session.uses += 1
        session.clear_listeners()

        reason = self._discard_reason(session)
        if reason is None and self.isolate_contexts:
            try:
                await session.reset()
            except Exception as e:
                reason = f"reset failed: {e}"

        if reason is not None:
            await self._discard(session, reason)
            return

        self._idle_sessions.append(session)

    def _discard_reason(self, session: BrowserSession) -> Optional[str]:
        if self.context_policy == "fresh":
            return "fresh context policy"
        if self._closing:
            return "pool shutting down"
        if not session.is_usable:
            return "session unusable"
        if session.uses >= self.max_context_uses:
            return f"reached {self.max_context_uses} uses"
        return None

    async def _discard(self, session: BrowserSession, reason: str) -> None:
        logger.debug(f"Discarding browser session {session.session_id}: {reason}")
        self.metrics.record_context_discarded()
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Error closing browser session {session.session_id}: {e}")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        """Number of jobs currently executing."""
        return self._active

    @property
    def queued_count(self) -> int:
        """Number of jobs waiting for a slot."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def idle_sessions(self) -> int:
        """Number of sessions ready for reuse."""
        return len(self._idle_sessions)

    @property
    def is_closing(self) -> bool:
        return self._closing
