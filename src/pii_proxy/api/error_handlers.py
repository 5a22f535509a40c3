"""
FastAPI exception handlers for structured error responses.

Maps domain exceptions to HTTP status codes. Error bodies follow the
upstream style {"error": ..., "message": ...} so OpenAI-compatible
clients surface them sensibly.
"""

import logging
from datetime import datetime, timezone

from fastapi import Request, status
from fastapi.responses import JSONResponse

from pii_proxy.inference.exceptions import InferenceError, InferenceTimeout
from pii_proxy.proxy.exceptions import (
    RateLimitExceeded,
    RequestValidationError,
    SessionBannedError,
    UpstreamError,
)

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle malformed chat-completion bodies.

    Maps to 400 Bad Request.
    """
    logger.warning("Invalid request body", extra={"details": exc.details})

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Bad Request",
            "message": exc.message,
            "details": exc.details,
            "timestamp": _timestamp(),
        },
    )


async def session_banned_handler(request: Request, exc: SessionBannedError) -> JSONResponse:
    """
    Handle requests from sessions over the risk threshold.

    Maps to 403 Forbidden. The session id itself is not echoed back.
    """
    logger.warning("Blocked banned session", extra={"risk_score": exc.score})

    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "error": "Forbidden",
            "message": "Session blocked due to excessive PII exposure. Please try again later.",
            "timestamp": _timestamp(),
        },
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Maps to 429 Too Many Requests with a Retry-After header."""
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        headers={"Retry-After": str(exc.retry_after_seconds)},
        content={
            "error": "Too Many Requests",
            "message": exc.message,
            "details": exc.details,
            "timestamp": _timestamp(),
        },
    )


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """
    Handle upstream provider failures.

    The upstream status code is passed through; the upstream body is
    returned as the message.
    """
    logger.error(
        "Upstream error",
        extra={"upstream_status": exc.status_code},
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "Upstream Error",
            "message": exc.body or exc.message,
            "timestamp": _timestamp(),
        },
    )


async def inference_timeout_handler(request: Request, exc: InferenceTimeout) -> JSONResponse:
    """
    Handle fail-closed detection timeouts.

    Maps to 503 Service Unavailable: the text was not redacted in time,
    so nothing was forwarded.
    """
    logger.error("Request blocked by inference timeout", extra={"timeout_ms": exc.timeout_ms})

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "Service Unavailable",
            "message": exc.message,
            "timestamp": _timestamp(),
        },
    )


async def inference_error_handler(request: Request, exc: InferenceError) -> JSONResponse:
    """
    Handle classifier failures other than timeouts.

    Maps to 502 Bad Gateway.
    """
    logger.error("Classifier failure", extra={"error": exc.message, "details": exc.details})

    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "Bad Gateway",
            "message": "PII classifier unavailable",
            "timestamp": _timestamp(),
        },
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected errors.

    Maps to 500 Internal Server Error.
    """
    logger.exception(
        "Unexpected error",
        extra={"error_type": type(exc).__name__},
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
            "timestamp": _timestamp(),
        },
    )


# Exception handler mapping for FastAPI app.add_exception_handler()
EXCEPTION_HANDLERS = {
    RequestValidationError: request_validation_error_handler,
    SessionBannedError: session_banned_handler,
    RateLimitExceeded: rate_limit_handler,
    UpstreamError: upstream_error_handler,
    InferenceTimeout: inference_timeout_handler,
    InferenceError: inference_error_handler,
    Exception: generic_error_handler,
}
