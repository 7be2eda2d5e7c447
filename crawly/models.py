"""
Crawly Pydantic Models.

Request, job and result models for the rendering API. Result field aliases
(page, status, headers, finalUrl, supabaseCalls) are the wire format callers
integrate against and must not change.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RenderOptions(BaseModel):
    """Legacy per-request options object."""

    timeout: Optional[int] = Field(default=None, gt=0, description="Navigation timeout (ms)")


class RenderJob(BaseModel):
    """One immutable unit of work submitted to the execution pool."""

    model_config = ConfigDict(frozen=True)

    url: str
    headers: Optional[Dict[str, str]] = None
    form_data: Optional[Dict[str, str]] = None
    form_selector: Optional[str] = None
    submit_selector: Optional[str] = None
    timeout_ms: Optional[int] = None

    @property
    def wants_form(self) -> bool:
        return bool(self.form_data) and bool(self.form_selector)


class RenderRequest(BaseModel):
    """Request body for POST /render."""

    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = Field(default=None, description="URL to render")
    headers: Optional[Dict[str, str]] = Field(
        default=None,
        description="Extra HTTP headers sent with every page request",
    )
    form_data: Optional[Dict[str, str]] = Field(
        default=None,
        alias="formData",
        description="Form field name/value pairs, filled in order",
    )
    form_selector: Optional[str] = Field(
        default=None,
        alias="formSelector",
        description="CSS selector of the form to fill",
    )
    submit_selector: Optional[str] = Field(
        default=None,
        alias="submitSelector",
        description="CSS selector of the submit control (native submit() if omitted)",
    )
    timeout_ms: Optional[int] = Field(
        default=None,
        alias="timeoutMs",
        gt=0,
        description="Navigation timeout override (ms)",
    )
    options: Optional[RenderOptions] = None

    def to_job(self) -> RenderJob:
        """Build the immutable job. Requires url to be set."""
        timeout_ms = self.timeout_ms
        if timeout_ms is None and self.options is not None:
            timeout_ms = self.options.timeout
        return RenderJob(
            url=self.url,
            headers=self.headers,
            form_data=self.form_data,
            form_selector=self.form_selector,
            submit_selector=self.submit_selector,
            timeout_ms=timeout_ms,
        )


class CapturedCall(BaseModel):
    """A backend API call observed while the page loaded."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(..., description="Request URL")
    method: str = Field(..., description="HTTP method")
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers as sent")
    post_data: Optional[str] = Field(default=None, alias="postData", description="Request body")


class RenderResult(BaseModel):
    """Response model for a successful render."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    html: str = Field(..., alias="page", description="Rendered HTML content")
    status_code: int = Field(..., alias="status", description="Main document HTTP status")
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Main document response headers",
    )
    final_url: str = Field(..., alias="finalUrl", description="Final URL after redirects")
    captured_calls: List[CapturedCall] = Field(
        default_factory=list,
        alias="supabaseCalls",
        description="Backend API calls in request order",
    )


class ErrorResponse(BaseModel):
    """Error body returned by the API."""

    error: str
    type: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy", description="Service status")
    max_concurrency: int = Field(..., description="Configured concurrency limit")
    active_jobs: int = Field(..., description="Jobs currently executing")
    queued_jobs: int = Field(..., description="Jobs waiting for a slot")
    idle_contexts: int = Field(..., description="Browser contexts ready for reuse")
    context_policy: str = Field(..., description="Context lifecycle policy")


class StatsResponse(BaseModel):
    """Process-wide render counters."""

    served: int
    errors: int
    form_errors: int
    slow_requests: int
    slow_navigations: int
    contexts_created: int
    contexts_discarded: int
