"""
Error taxonomy for the visualization pipeline.

Every error carries the machine-readable `error` string returned to the client, a human
readable message, the HTTP status, and optional diagnostic details (paths, directory
listings, tracebacks) for operators.
"""
from typing import Any, Dict, Optional


class VisualizationError(Exception):
    """Base class for errors surfaced to the client as a JSON payload."""

    status_code: int = 500
    default_error: str = "Failed to process visualization"

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        details: Optional[Any] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error = error or self.default_error
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "error": self.error, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class InputError(VisualizationError):
    """Client input problem detected before any staging or provider call."""

    status_code = 400
    default_error = "Invalid request"

    def __init__(self, error: str, message: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message or error, error=error, details=details)


class ConfigurationError(VisualizationError):
    """Server is missing configuration required to run a transform."""

    default_error = "Server configuration error"


class ProviderError(VisualizationError):
    """The external transform failed after retries or returned no usable output."""


class ProcessingError(VisualizationError):
    """Download, decode, or artifact write failure around the provider call."""


class JobTimeoutError(VisualizationError):
    """The transform worker exceeded the wall-clock ceiling and was terminated."""

    default_error = "Visualization timed out"
