"""
Render Router - Page rendering endpoint.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ....dependencies import get_pool, verify_bearer_token
from ....errors import RenderError
from ....models import ErrorResponse, RenderRequest, RenderResult
from ....services.pool import ExecutionPool

logger = logging.getLogger("crawly.api.render")

router = APIRouter(tags=["render"])


def _error_response(status_code: int, message: str, error_type: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=message, type=error_type)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.post(
    "/render",
    response_model=RenderResult,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    dependencies=[Depends(verify_bearer_token)],
)
async def render_url(payload: RenderRequest, pool: ExecutionPool = Depends(get_pool)):
    """
    Render a URL in a real browser.

    This endpoint:
    1. Validates that a URL was supplied
    2. Submits the job to the execution pool (queued if all slots are busy)
    3. Optionally fills and submits a form on the page
    4. Returns page HTML, status, headers, final URL and backend API calls

    Args:
        payload: RenderRequest with URL, headers and optional form data

    Returns:
        RenderResult serialized as page/status/headers/finalUrl/supabaseCalls
    """
    if not payload.url:
        return _error_response(400, "URL parameter is required.")

    job = payload.to_job()
    try:
        return await pool.submit(job)

    except RenderError as e:
        return _error_response(
            e.status_code,
            f"An error occurred while processing the URL. {e}",
            e.error_type,
        )

    except Exception as e:
        logger.exception(f"Unexpected error rendering {job.url}")
        return _error_response(500, f"An error occurred while processing the URL. {e}", "internal_error")
