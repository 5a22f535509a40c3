"""Session identity, risk scoring and ban decisions."""

from pii_proxy.session.risk_engine import SessionService, extract_session_id, session_fingerprint
from pii_proxy.session.session_store import SessionStore

__all__ = [
    "SessionService",
    "SessionStore",
    "extract_session_id",
    "session_fingerprint",
]
