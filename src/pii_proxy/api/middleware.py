"""Request tracing middleware: request ids in every log line and response."""

import re
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Client ids are echoed into logs and headers, so only short opaque tokens are reused
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Binds request_id, method and path to the structlog context.

    Headers, query strings and bodies are never logged: all of them may
    carry PII or upstream credentials.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        ):
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("Request failed", duration_ms=_elapsed_ms(started))
                raise

            # For SSE this is time to first byte, not to the end of the stream
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
