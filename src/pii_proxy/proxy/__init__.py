"""
Proxy orchestration layer.

- service.py: request gating, message/response redaction, upstream calls
- stream_transformer.py: SSE split-transform-merge redaction
- upstream_client.py: httpx client for the chat-completions provider
- exceptions.py: errors mapped to HTTP statuses by the API layer
"""

from pii_proxy.proxy.exceptions import (
    MalformedStreamFrame,
    ProxyError,
    RateLimitExceeded,
    RequestValidationError,
    SessionBannedError,
    UpstreamError,
)
from pii_proxy.proxy.service import ProxyService
from pii_proxy.proxy.stream_transformer import StreamRedactionTransformer
from pii_proxy.proxy.upstream_client import UpstreamClient

__all__ = [
    "ProxyService",
    "StreamRedactionTransformer",
    "UpstreamClient",
    "ProxyError",
    "UpstreamError",
    "RequestValidationError",
    "SessionBannedError",
    "RateLimitExceeded",
    "MalformedStreamFrame",
]
