"""
Middleware package for the API.
"""
from middleware.logging_middleware import (
    REQUEST_ID_HEADER,
    ContextualLogger,
    RequestLoggingMiddleware,
    get_logger,
    get_request_id,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "RequestLoggingMiddleware",
    "ContextualLogger",
    "get_logger",
    "get_request_id",
]
