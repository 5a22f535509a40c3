"""Monitoring and metrics instrumentation for the PII Redaction Proxy.

Exports custom Prometheus metrics for operational monitoring and alerting.
"""

from pii_proxy.monitoring.metrics import (
    inference_latency_seconds,
    inference_timeouts_total,
    pii_entities_detected_total,
    rate_limited_requests_total,
    session_bans_total,
    stream_flushes_total,
    upstream_latency_seconds,
    upstream_requests_total,
)

__all__ = [
    "pii_entities_detected_total",
    "inference_latency_seconds",
    "inference_timeouts_total",
    "stream_flushes_total",
    "session_bans_total",
    "rate_limited_requests_total",
    "upstream_requests_total",
    "upstream_latency_seconds",
]
