"""
Exceptions raised by the proxy orchestration layer.

Request-level errors map onto one HTTP status in api.error_handlers, so
route handlers simply let them propagate. MalformedStreamFrame stays
inside the stream transformer.
"""


class ProxyError(Exception):
    """
    Base exception for all proxy errors.

    Carries a human-readable message plus structured details that are
    safe to return to the client (never raw PII).
    """

    status_code: int = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UpstreamError(ProxyError):
    """
    Raised when the upstream provider returns non-2xx or is unreachable.

    The upstream status code is passed through to the client; transport
    failures use 502.
    """

    def __init__(self, status_code: int, body: str = "", message: str | None = None):
        super().__init__(
            message or f"Upstream request failed with status {status_code}",
            details={"upstream_status": status_code},
        )
        self.status_code = status_code
        self.body = body


class RequestValidationError(ProxyError):
    """Raised when a chat-completion body is missing required fields."""

    status_code = 400


class SessionBannedError(ProxyError):
    """Raised when the session's risk score is at or above the threshold."""

    status_code = 403

    def __init__(self, session_id: str, score: int):
        super().__init__(
            "Session blocked due to repeated PII exposure",
            details={"risk_score": score},
        )
        self.session_id = session_id
        self.score = score


class RateLimitExceeded(ProxyError):
    """Raised when a session exceeds RATE_LIMIT_MAX requests per window."""

    status_code = 429

    def __init__(self, limit: int, retry_after_seconds: int):
        super().__init__(
            "Rate limit exceeded",
            details={"limit": limit, "retry_after_seconds": retry_after_seconds},
        )
        self.retry_after_seconds = retry_after_seconds


class MalformedStreamFrame(ProxyError):
    """
    Raised for an SSE data frame the transformer cannot redact: invalid
    JSON, or delta content that is not a string.

    Never reaches the client. The transformer catches it, logs a warning
    and forwards the frame verbatim.
    """
