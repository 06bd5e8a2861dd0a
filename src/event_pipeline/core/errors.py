from typing import Optional


class PipelineError(Exception):
    """Base class for event pipeline errors."""
    pass


class ApiError(PipelineError):
    """Raised when a request does not complete with HTTP 200.

    Attributes:
        status_code: HTTP status, or -1 when no response was received
        message: Extracted error summary from the response body
        retry_after: Server advised delay in seconds (429/500/503 only)
    """

    def __init__(self, status_code: int, message: str, retry_after: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        self.retry_after = retry_after
        super().__init__(f"Status '{status_code}', message '{message}'")


class TransportError(ApiError):
    """Raised when the request failed before any response was received."""

    def __init__(self, message: str):
        super().__init__(-1, message)


class ConfigurationError(PipelineError):
    """Raised for problems the operator must fix: credentials, host, options."""
    pass


class FatalApiError(ConfigurationError):
    """Raised when the API rejects a request in a way retrying cannot fix."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"Status '{status_code}', error message '{message}'")


class RetryGiveUpError(ConfigurationError):
    """Raised when the retry budget is exhausted."""

    def __init__(self, last_error: ApiError, retry_limit: int):
        self.last_error = last_error
        self.retry_limit = retry_limit
        super().__init__(
            f"Giving up after {retry_limit} retries. "
            f"Last status '{last_error.status_code}', message '{last_error.message}'"
        )


class ExtractionCancelledError(PipelineError):
    """Raised when extraction is cancelled through the cancel event."""
    pass
