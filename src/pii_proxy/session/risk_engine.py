"""
Session risk engine.

Every detected entity carries a weight (see models.enums.RISK_POINTS). The
weights accumulate per session inside a rolling window; a session whose
score reaches the threshold is banned until the window lapses.

Session identity comes from the request, in priority order:
1. x-api-key header        -> "key:<value>"
2. authorization header    -> "auth:<sha256 hex, first 32 chars>"
3. client network address  -> "ip:<addr>"
"""

import hashlib
from typing import Mapping, Optional, Sequence

import structlog

from pii_proxy.models.enums import risk_points_for
from pii_proxy.models.pii_models import PiiEntity
from pii_proxy.models.session_models import RiskAssessment, RiskConfig
from pii_proxy.monitoring.metrics import session_bans_total
from pii_proxy.session.session_store import SessionStore

logger = structlog.get_logger(__name__)

AUTH_DIGEST_LENGTH = 32


def session_fingerprint(session_id: str) -> str:
    """Short digest of a session id for logs; ids may embed API keys."""
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:12]


def extract_session_id(headers: Mapping[str, str], client_ip: Optional[str]) -> str:
    """
    Derive the session bucket for a request.

    Args:
        headers: Request headers (case-insensitive mapping or lower-cased keys)
        client_ip: Peer address, may be None behind some test clients

    Returns:
        Session id; never empty
    """
    api_key = headers.get("x-api-key")
    if api_key:
        return f"key:{api_key}"

    authorization = headers.get("authorization")
    if authorization:
        digest = hashlib.sha256(authorization.encode("utf-8")).hexdigest()
        return f"auth:{digest[:AUTH_DIGEST_LENGTH]}"

    return f"ip:{client_ip or 'unknown'}"


class SessionService:
    """Scores sessions and answers ban checks."""

    def __init__(self, session_store: SessionStore, config: RiskConfig):
        self.sessions = session_store
        self.config = config

    async def assess_risk(
        self, session_id: str, entities: Sequence[PiiEntity]
    ) -> RiskAssessment:
        """
        Add the weights of entities to the session score.

        An empty entity list does not touch the store beyond a read.
        """
        if not entities:
            score = await self.sessions.get_risk(session_id)
            return RiskAssessment(
                score=score,
                is_banned=score >= self.config.threshold,
                points_added=0,
            )

        points = sum(risk_points_for(entity.type) for entity in entities)
        score = await self.sessions.add_risk(
            session_id, points, self.config.window_seconds
        )
        await self.sessions.increment(session_id, "entities", len(entities))

        is_banned = score >= self.config.threshold
        previous_window_score = score - points
        if is_banned and previous_window_score < self.config.threshold:
            session_bans_total.inc()
            logger.warning(
                "Session crossed risk threshold",
                session=session_fingerprint(session_id),
                score=score,
                threshold=self.config.threshold,
            )
        else:
            logger.debug(
                "Session risk updated",
                session=session_fingerprint(session_id),
                points_added=points,
                score=score,
            )

        return RiskAssessment(score=score, is_banned=is_banned, points_added=points)

    async def is_banned(self, session_id: str) -> bool:
        return await self.get_risk_score(session_id) >= self.config.threshold

    async def get_risk_score(self, session_id: str) -> int:
        return await self.sessions.get_risk(session_id)

    async def clear_risk(self, session_id: str) -> None:
        await self.sessions.clear_risk(session_id)
        logger.info("Session risk cleared", session=session_fingerprint(session_id))

    async def clear_session(self, session_id: str) -> None:
        await self.sessions.clear_session(session_id)
        logger.info("Session cleared", session=session_fingerprint(session_id))

    async def record_request(self, session_id: str) -> int:
        """Count a proxied request against the session hash."""
        return await self.sessions.increment(session_id, "requests")
