"""
PII Redaction Proxy.

Transparent proxy for OpenAI-compatible chat-completion APIs that:
- Detects PII in requests and responses with a token-classification model
- Replaces it with deterministic, referentially consistent fake values
- Redacts streamed (SSE) responses without breaking the event protocol
- Scores sessions for repeated PII exposure and blocks those over a threshold

Architecture: FastAPI proxy + transformers (or remote) classifier + Redis/in-memory session store
"""

__version__ = "0.1.0"
