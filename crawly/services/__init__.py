# crawly/services/__init__.py
"""Render core: execution pool, job executor, network observer, form automator."""

from .driver import BrowserEngine, BrowserSession
from .pool import ExecutionPool
from .renderer import RenderJobExecutor

__all__ = ["BrowserEngine", "BrowserSession", "ExecutionPool", "RenderJobExecutor"]
