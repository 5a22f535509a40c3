"""
Custom exceptions for the token-classification layer.

The redaction service distinguishes a classifier that is slow (timeout,
subject to the configured fail strategy) from one that is broken
(always propagated).
"""


class InferenceError(Exception):
    """
    Base exception for all classifier errors.

    All inference-specific exceptions inherit from this to allow catching
    any classifier-related error with a single except clause.
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InferenceTimeout(InferenceError):
    """
    Raised when PII detection does not finish within the configured deadline.

    This is the only detection error with a configurable policy:
    fail-closed propagates it, fail-open degrades to pass-through text.
    """
    def __init__(self, timeout_ms: int):
        super().__init__(
            f"Inference timeout exceeded: {timeout_ms}ms",
            details={"timeout_ms": timeout_ms},
        )
        self.timeout_ms = timeout_ms


class ClassifierUnavailableError(InferenceError):
    """
    Raised when the classifier cannot serve requests.

    Examples:
    - Model failed to load (missing weights, missing optional dependency)
    - Remote classifier unreachable or returned a server error
    """
    pass
