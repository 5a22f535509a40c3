"""
FastAPI layer of the PII Redaction Proxy.

- routes.py: chat completions, debug redaction, health
- dependencies.py: access to components built at startup
- error_handlers.py: domain exception -> HTTP status mapping
- middleware.py: request id tracing
- models.py: API request/response models
"""
