"""
FastAPI dependency injection for the PII Redaction Proxy.

Expensive components (classifier, store, upstream client) are built once at
startup and kept on app.state; these functions hand them to route handlers.
Tests swap them through app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends, Request

from pii_proxy.config import Settings, settings
from pii_proxy.inference.model_cache import ClassifierCache
from pii_proxy.persistence.store import KeyValueStore
from pii_proxy.pii.redactor import RedactionService
from pii_proxy.proxy.service import ProxyService
from pii_proxy.session.risk_engine import SessionService, extract_session_id


@lru_cache()
def get_settings() -> Settings:
    """
    Get settings singleton.

    Returns:
        Settings instance
    """
    return settings


def get_redaction_service(request: Request) -> RedactionService:
    """Redaction service built at startup."""
    return request.app.state.redaction_service


def get_session_service(request: Request) -> SessionService:
    """Session risk engine built at startup."""
    return request.app.state.session_service


def get_proxy_service(request: Request) -> ProxyService:
    """Proxy orchestrator built at startup."""
    return request.app.state.proxy_service


def get_session_id(request: Request) -> str:
    """
    Session bucket for the calling client.

    Derived from x-api-key, then authorization, then the peer address.
    """
    client_ip = request.client.host if request.client else None
    return extract_session_id(request.headers, client_ip)


async def admitted_session(
    session_id: str = Depends(get_session_id),
    proxy: ProxyService = Depends(get_proxy_service),
) -> str:
    """
    Session id of a request that passed the rate limit and ban gate.

    Raises:
        RateLimitExceeded: Too many requests in the current window
        SessionBannedError: Session risk at or above the threshold
    """
    await proxy.admit(session_id)
    return session_id


def get_store(request: Request) -> KeyValueStore:
    """Key-value store built at startup (Redis or in-memory)."""
    return request.app.state.store


def get_debug_classifiers(request: Request) -> ClassifierCache:
    """Per-model classifiers for /debug/redact, loaded on demand."""
    return request.app.state.debug_classifiers
