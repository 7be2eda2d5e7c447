"""
Crawly Service Configuration.

Environment-driven settings for the rendering microservice.
"""

from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    # =========================================================================
    # API SETTINGS
    # =========================================================================
    api_title: str = "Crawly Rendering Service"
    api_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Enable verbose logging")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # =========================================================================
    # CORS SETTINGS
    # =========================================================================
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed origins for CORS",
    )
    cors_credentials: bool = True
    cors_methods: List[str] = ["*"]
    cors_headers: List[str] = ["*"]

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================
    crawly_bearer_token: Optional[str] = Field(
        default=None,
        description="Bearer token required on /render (unset disables auth)",
    )

    # =========================================================================
    # EXECUTION POOL SETTINGS
    # =========================================================================
    max_concurrency: int = Field(
        default=2,
        ge=1,
        description="Maximum number of render jobs executing at once",
    )
    context_policy: Literal["reuse", "fresh"] = Field(
        default="reuse",
        description="Reuse browser contexts across jobs or open a fresh one per job",
    )
    max_context_uses: int = Field(
        default=50,
        ge=1,
        description="Jobs a reused context serves before it is replaced",
    )
    isolate_contexts: bool = Field(
        default=True,
        description="Clear cookies and blank the page before reusing a context",
    )
    max_queue_size: int = Field(
        default=0,
        ge=0,
        description="Maximum queued jobs waiting for a slot (0 = unbounded)",
    )

    # =========================================================================
    # BROWSER SETTINGS
    # =========================================================================
    chrome_executable_path: Optional[str] = Field(
        default=None,
        description="Override the Chromium executable",
    )
    browser_headless: bool = Field(default=True, description="Run the browser headless")
    stealth_enabled: bool = Field(
        default=True,
        description="Send realistic default headers and hide automation markers",
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User agent applied to every job")
    viewport_width: int = Field(default=1366, description="Viewport width")
    viewport_height: int = Field(default=768, description="Viewport height")

    # =========================================================================
    # RENDERING DEFAULTS
    # =========================================================================
    default_timeout_ms: int = Field(default=60000, description="Default navigation timeout in ms")
    stage_timeout_grace_ms: int = Field(
        default=1000,
        description="Extra time allowed past a stage timeout before the job is aborted",
    )
    form_selector_timeout_ms: int = Field(default=5000, description="Wait for the form selector")
    form_field_timeout_ms: int = Field(default=5000, description="Wait for each form field")
    form_navigation_timeout_ms: int = Field(
        default=30000,
        description="Wait for the navigation after form submission",
    )
    form_strict_fields: bool = Field(
        default=True,
        description="Abort form automation on the first missing field",
    )

    # =========================================================================
    # NETWORK OBSERVATION
    # =========================================================================
    backend_api_marker: str = Field(
        default="supabase",
        description="URL fragment identifying backend API calls",
    )
    slow_request_threshold_ms: int = Field(default=5000, description="Slow request warning threshold")
    network_timing_key: Literal["url", "request"] = Field(
        default="url",
        description="Key in-flight request timings by URL or by request identity",
    )

    # =========================================================================
    # STATS
    # =========================================================================
    stats_interval_seconds: int = Field(
        default=60,
        ge=0,
        description="Interval for logging served/error counts (0 disables)",
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
