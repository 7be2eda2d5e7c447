"""
Render Error Taxonomy.

Every failure the render core can report is a RenderError subclass carrying
the HTTP status the API layer answers with.
"""

from typing import Optional


class RenderError(Exception):
    """Raised when a render job fails."""

    error_type = "render_error"

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NavigationError(RenderError):
    """The browser engine could not load the URL."""

    error_type = "navigation_error"

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, status_code=status_code)


class RenderTimeoutError(RenderError):
    """A navigation or page action exceeded its time bound."""

    error_type = "timeout"

    def __init__(self, message: str, status_code: int = 504):
        super().__init__(message, status_code=status_code)


class ContextError(RenderError):
    """The browser session became unusable and must be discarded."""

    error_type = "context_error"

    def __init__(self, message: str, status_code: int = 503):
        super().__init__(message, status_code=status_code)


class PoolExhaustionError(RenderError):
    """The bounded wait queue is full."""

    error_type = "pool_exhausted"

    def __init__(self, message: str, status_code: int = 503):
        super().__init__(message, status_code=status_code)


class PoolClosedError(RenderError):
    """The pool is shutting down and no longer starts jobs."""

    error_type = "pool_closed"

    def __init__(self, message: str, status_code: int = 503):
        super().__init__(message, status_code=status_code)


class FormError(RenderError):
    """
    Form automation failed.

    Recoverable: the executor logs it and still returns the page as it is.

    Attributes:
        stage: Form automator state the failure happened in
        cause: Underlying error (selector wait, typing, submit, navigation)
    """

    error_type = "form_error"

    def __init__(self, message: str, stage: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(message, status_code=500)
        self.stage = stage
        self.cause = cause
