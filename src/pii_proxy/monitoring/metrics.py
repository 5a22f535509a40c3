"""Custom Prometheus metrics for the PII Redaction Proxy.

These metrics are exposed at /metrics endpoint and should be scraped by Prometheus.
Alert rules should be configured for:
- inference_timeouts_total (detection slower than its deadline)
- session_bans_total (sessions crossing the risk threshold)
- upstream_requests_total with status != 2xx (provider trouble)
"""

from prometheus_client import Counter, Histogram

# === Detection Metrics ===

pii_entities_detected_total = Counter(
    "pii_entities_detected_total",
    "Total PII entities detected and replaced, by type",
    ["pii_type"],
)
"""
Detected entity counter by PII type.

Labels:
- pii_type: PERSON, EMAIL, SSN, CREDIT_CARD, ...

Used to watch detection drift after model upgrades.
"""

inference_latency_seconds = Histogram(
    "inference_latency_seconds",
    "Token classification plus entity location latency in seconds",
    ["outcome"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
"""
Detection latency histogram.

Labels:
- outcome: success, error, cancelled (lost the race against the deadline)

Buckets sized around the default 500ms deadline.

Alert thresholds:
- WARN: p95 > 50% of INFERENCE_TIMEOUT_MS
"""

inference_timeouts_total = Counter(
    "inference_timeouts_total",
    "Detections that exceeded the deadline, by fail strategy",
    ["strategy"],
)
"""
Timeout counter by fail strategy.

Labels:
- strategy: closed (request blocked), open (text forwarded unredacted)

Alert thresholds:
- CRITICAL: any increase with strategy=open (unredacted text left the proxy)
"""

# === Streaming Metrics ===

stream_flushes_total = Counter(
    "stream_flushes_total",
    "Streaming buffer flushes by trigger",
    ["trigger"],
)
"""
Flush counter by trigger.

Labels:
- trigger: sentence, tokens, delay, timer, passthrough, done, eof

A high delay/timer share means output rarely ends sentences (code, lists).
"""

# === Session Metrics ===

session_bans_total = Counter(
    "session_bans_total",
    "Risk assessments that pushed a session to or past the ban threshold",
)

rate_limited_requests_total = Counter(
    "rate_limited_requests_total",
    "Requests rejected by the per-session rate limiter",
)

# === Upstream Metrics ===

upstream_requests_total = Counter(
    "upstream_requests_total",
    "Upstream chat-completion calls by mode and status code",
    ["mode", "status"],
)
"""
Upstream call counter.

Labels:
- mode: json, stream
- status: HTTP status code, or 'transport_error'
"""

upstream_latency_seconds = Histogram(
    "upstream_latency_seconds",
    "Upstream latency until response headers, in seconds",
    ["mode"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)
