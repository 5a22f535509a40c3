"""
Integration tests for the PII Redaction Proxy.

Test components together:
- API endpoints (FastAPI TestClient, stub classifier, mocked upstream)
- JSON and SSE chat completions with redaction in both directions
- Session bans, rate limiting and fail strategies end to end
- RedisStore against a live Redis (skipped when unavailable)
"""
