"""
Unit tests for the PII Redaction Proxy.

Test individual components in isolation:
- Entity locator (grouping, span recovery, non-overlap)
- Replacement generator (determinism, salt sensitivity, formats)
- Redaction service (timeouts, fail strategies, replacement order)
- Stream transformer (flush triggers, framing, timer)
- Session risk engine and key-value stores
- Upstream and classifier clients, API plumbing
"""
