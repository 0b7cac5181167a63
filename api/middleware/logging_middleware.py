"""
Request logging middleware with correlation IDs.

The request ID is echoed in X-Request-ID, prefixed to every ContextualLogger line, and handed
to the transform worker through its environment so worker log lines can be matched to the
request that spawned them.
"""
import logging
import re
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"
_CLIENT_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get()


def new_request_id(incoming: str = "") -> str:
    """Reuse a well-formed client-supplied ID, otherwise mint a short one."""
    if incoming and _CLIENT_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex[:8]


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs start/end of every request with timing and upload size."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = new_request_id(request.headers.get(REQUEST_ID_HEADER, ""))
        token = request_id_var.set(request_id)

        client_ip = request.headers.get("x-forwarded-for", request.client.host if request.client else "")
        upload_bytes = request.headers.get("content-length", "0")
        started = time.perf_counter()

        logger.info(
            f"[{request_id}] → {request.method} {request.url.path}",
            extra={"request_id": request_id, "client_ip": client_ip, "content_length": upload_bytes},
        )

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            logger.error(f"[{request_id}] ✗ {type(e).__name__}: {str(e)[:100]} ({elapsed:.1f}s)", exc_info=True)
            raise
        finally:
            request_id_var.reset(token)

        elapsed = time.perf_counter() - started
        level = logging.INFO if response.status_code < 400 else logging.WARNING
        logger.log(level, f"[{request_id}] ← {response.status_code} ({elapsed:.1f}s)")

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.3f}"
        return response


class ContextualLogger:
    """Logger wrapper that prefixes the current request ID."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _prefix(self, msg: str) -> str:
        request_id = get_request_id()
        return f"[{request_id}] {msg}" if request_id else msg

    def debug(self, msg: str, *args, **kwargs):
        self.logger.debug(self._prefix(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.logger.info(self._prefix(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.logger.warning(self._prefix(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.logger.error(self._prefix(msg), *args, **kwargs)


def get_logger(name: str) -> ContextualLogger:
    return ContextualLogger(name)
