"""Request-context middleware for FastAPI.

Generates or propagates ``X-Request-ID`` so that outbound calls made by the
service clients carry the same id, and logs each request with its duration.

Usage:
    from libs.common.middleware import add_observability_middleware

    app = FastAPI()
    add_observability_middleware(app)
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

_QUIET_PATHS = {"/health"}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request id/path/method to the context and log the request lifecycle."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )
        quiet = request.url.path in _QUIET_PATHS
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "%s %s failed",
                request.method,
                request.url.path,
                extra={"extra_fields": {
                    "error": str(e),
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                }},
            )
            raise
        else:
            if not quiet:
                duration_ms = (time.perf_counter() - start_time) * 1000
                log = logger.warning if response.status_code >= 400 else logger.info
                log(
                    "%s %s -> %d (%.2f ms)",
                    request.method,
                    request.url.path,
                    response.status_code,
                    duration_ms,
                )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()


def add_observability_middleware(app: FastAPI) -> None:
    """
    Configure logging and install the request-context middleware.
    """
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
