"""
Crawly Rendering Service - FastAPI Application.

Renders web pages on behalf of callers that cannot execute JavaScript:
loads the URL in headless Chromium, optionally fills and submits a form,
and returns the HTML, status, headers, final URL and detected backend API
calls.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .models import ErrorResponse
from .services.driver import BrowserEngine
from .services.engine import PlaywrightEngine
from .services.metrics import MetricsCollector, StatsReporter
from .services.pool import ExecutionPool
from .api.v1.routers import render as render_router
from .api.v1.routers import system as system_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("crawly.main")


def create_app(engine: Optional[BrowserEngine] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Browser engine to drive; Playwright Chromium if omitted

    Returns:
        FastAPI app whose lifespan owns the execution pool and metrics
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler - start and drain the execution pool."""
        # Startup
        logger.info("Starting Crawly Rendering Service")
        if not settings.crawly_bearer_token:
            logger.warning("CRAWLY_BEARER_TOKEN not set, /render is unauthenticated")

        metrics = MetricsCollector()
        pool = ExecutionPool.from_settings(
            engine or PlaywrightEngine.from_settings(settings),
            settings,
            metrics,
        )
        reporter = StatsReporter(metrics, settings.stats_interval_seconds)

        await pool.start()
        reporter.start()
        app.state.render_pool = pool
        app.state.metrics = metrics
        yield
        # Shutdown
        logger.info("Shutting down Crawly Rendering Service")
        await reporter.stop()
        await pool.shutdown()
        reporter.log_stats()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        debug=settings.debug,
        openapi_url="/api/v1/openapi.json",
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods,
        allow_headers=settings.cors_headers,
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Render HTTP errors in the same {"error": ...} shape as render failures."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail)).model_dump(exclude_none=True),
            headers=exc.headers,
        )

    # Include routers
    app.include_router(system_router.router, prefix="/api/v1")
    app.include_router(render_router.router, prefix="/api/v1")

    # Unversioned routes kept for existing callers and Docker healthcheck
    app.include_router(system_router.router, prefix="")
    app.include_router(render_router.router, prefix="")

    return app


app = create_app()
