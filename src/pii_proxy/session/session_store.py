"""
Namespaced session state on top of the key-value store.

Keys:
- risk:{session_id}     rolling risk counter (TTL = risk window)
- session:{session_id}  hash of per-session counters (requests, entities, ...)
"""

from typing import Optional

from pii_proxy.persistence.store import KeyValueStore

RISK_PREFIX = "risk:"
SESSION_PREFIX = "session:"


class SessionStore:
    """Thin wrapper that owns key naming for session data."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def risk_key(session_id: str) -> str:
        return f"{RISK_PREFIX}{session_id}"

    @staticmethod
    def session_key(session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    async def add_risk(self, session_id: str, points: int, window_seconds: int) -> int:
        return await self.store.incr_window(self.risk_key(session_id), points, window_seconds)

    async def get_risk(self, session_id: str) -> int:
        value = await self.store.get(self.risk_key(session_id))
        return int(value) if value is not None else 0

    async def clear_risk(self, session_id: str) -> None:
        await self.store.delete(self.risk_key(session_id))

    async def increment(self, session_id: str, field: str, amount: int = 1) -> int:
        """Bump a named counter in the session hash."""
        return await self.store.hincrby(self.session_key(session_id), field, amount)

    async def get(self, session_id: str, field: str) -> Optional[int]:
        value = await self.store.hget(self.session_key(session_id), field)
        return int(value) if value is not None else None

    async def clear_session(self, session_id: str) -> None:
        await self.store.delete(self.session_key(session_id))
        await self.clear_risk(session_id)
