"""
FastAPI dependencies for authentication and access to the execution pool.

Key Dependencies:
    - verify_bearer_token: Validate the service bearer token
    - get_pool: Execution pool owned by the application lifespan
    - get_metrics: Metrics collector owned by the application lifespan
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .services.metrics import MetricsCollector
from .services.pool import ExecutionPool

logger = logging.getLogger("crawly.dependencies")

# HTTP Bearer scheme for the service token
bearer_scheme = HTTPBearer(auto_error=False)


async def verify_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """
    Require `Authorization: Bearer <CRAWLY_BEARER_TOKEN>`.

    When no token is configured the check is skipped (dev mode).

    Raises:
        HTTPException: 401 if the token is missing or wrong
    """
    expected = settings.crawly_bearer_token
    if not expected:
        logger.debug("Dev mode: CRAWLY_BEARER_TOKEN not set, skipping auth")
        return

    if credentials is None or credentials.credentials != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_pool(request: Request) -> ExecutionPool:
    return request.app.state.render_pool


def get_metrics(request: Request) -> MetricsCollector:
    return request.app.state.metrics
