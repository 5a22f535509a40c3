"""Unit tests for the session risk engine."""

import hashlib

import pytest

from pii_proxy.models.enums import PiiType, risk_points_for
from pii_proxy.models.pii_models import PiiEntity
from pii_proxy.models.session_models import RiskConfig
from pii_proxy.session.risk_engine import SessionService, extract_session_id, session_fingerprint
from pii_proxy.session.session_store import SessionStore


def entity(pii_type: PiiType) -> PiiEntity:
    return PiiEntity(type=pii_type, text="xx", start=0, end=2, confidence=0.9)


@pytest.fixture
def session_service(memory_store) -> SessionService:
    return SessionService(SessionStore(memory_store), RiskConfig(threshold=40, window_ms=60_000))


class TestAssessRisk:
    """Score accumulation and ban decisions."""

    @pytest.mark.asyncio
    async def test_two_ssn_exposures_cross_threshold(self, session_service):
        first = await session_service.assess_risk("s1", [entity(PiiType.SSN)])
        second = await session_service.assess_risk("s1", [entity(PiiType.SSN)])

        assert (first.score, first.is_banned, first.points_added) == (25, False, 25)
        assert (second.score, second.is_banned, second.points_added) == (50, True, 25)
        assert await session_service.is_banned("s1")

    @pytest.mark.asyncio
    async def test_weights_are_summed(self, session_service):
        entities = [entity(PiiType.PERSON), entity(PiiType.PHONE), entity(PiiType.URL)]

        result = await session_service.assess_risk("s1", entities)

        assert result.points_added == 5 + 10 + 2

    @pytest.mark.asyncio
    async def test_empty_assessment_is_read_only(self, session_service, memory_store):
        result = await session_service.assess_risk("fresh", [])

        assert (result.score, result.is_banned, result.points_added) == (0, False, 0)
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_score_is_monotonic_within_window(self, session_service):
        scores = []
        for pii_type in [PiiType.EMAIL, PiiType.PASSWORD, PiiType.URL]:
            scores.append((await session_service.assess_risk("s1", [entity(pii_type)])).score)

        assert scores == sorted(scores)

    @pytest.mark.asyncio
    async def test_window_expiry_resets_score(self, session_service, fake_clock):
        await session_service.assess_risk("s1", [entity(PiiType.SSN), entity(PiiType.SSN)])
        assert await session_service.is_banned("s1")

        fake_clock.advance(61)

        assert await session_service.get_risk_score("s1") == 0
        assert not await session_service.is_banned("s1")
        result = await session_service.assess_risk("s1", [entity(PiiType.EMAIL)])
        assert result.score == 5

    @pytest.mark.asyncio
    async def test_later_increments_do_not_extend_window(self, session_service, fake_clock):
        await session_service.assess_risk("s1", [entity(PiiType.EMAIL)])
        fake_clock.advance(50)
        await session_service.assess_risk("s1", [entity(PiiType.EMAIL)])
        fake_clock.advance(11)

        assert await session_service.get_risk_score("s1") == 0

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, session_service):
        await session_service.assess_risk("a", [entity(PiiType.PASSWORD), entity(PiiType.SSN)])
        assert await session_service.is_banned("a")
        assert not await session_service.is_banned("b")

    @pytest.mark.asyncio
    async def test_clear_risk_unbans(self, session_service):
        await session_service.assess_risk("s1", [entity(PiiType.PASSWORD), entity(PiiType.SSN)])

        await session_service.clear_risk("s1")

        assert await session_service.get_risk_score("s1") == 0

    @pytest.mark.asyncio
    async def test_clear_session_drops_counters(self, session_service):
        await session_service.record_request("s1")
        await session_service.assess_risk("s1", [entity(PiiType.EMAIL)])

        await session_service.clear_session("s1")

        assert await session_service.sessions.get("s1", "requests") is None
        assert await session_service.get_risk_score("s1") == 0


class TestRiskPoints:
    def test_unmapped_type_uses_default(self):
        assert risk_points_for("SOMETHING_ELSE") == 5
        assert risk_points_for(PiiType.CREDIT_CARD) == 25


class TestSessionStore:
    """Key namespacing and hash counters."""

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, memory_store):
        sessions = SessionStore(memory_store)

        await sessions.add_risk("abc", 7, 60)
        await sessions.increment("abc", "requests")

        assert await memory_store.get("risk:abc") == "7"
        assert await memory_store.hget("session:abc", "requests") == "1"

    @pytest.mark.asyncio
    async def test_counter_defaults(self, memory_store):
        sessions = SessionStore(memory_store)

        assert await sessions.get("abc", "requests") is None
        assert await sessions.increment("abc", "entities", 3) == 3
        assert await sessions.get("abc", "entities") == 3


class TestExtractSessionId:
    """Session identity derivation."""

    def test_api_key_wins(self):
        headers = {"x-api-key": "k-123", "authorization": "Bearer abc"}
        assert extract_session_id(headers, "10.0.0.1") == "key:k-123"

    def test_authorization_is_digested(self):
        session_id = extract_session_id({"authorization": "Bearer secret-token"}, "10.0.0.1")

        digest = hashlib.sha256(b"Bearer secret-token").hexdigest()[:32]
        assert session_id == f"auth:{digest}"
        assert "secret-token" not in session_id

    def test_falls_back_to_ip(self):
        assert extract_session_id({}, "10.0.0.1") == "ip:10.0.0.1"
        assert extract_session_id({}, None) == "ip:unknown"

    def test_fingerprint_hides_session_id(self):
        fingerprint = session_fingerprint("key:sk-live-abc")
        assert len(fingerprint) == 12
        assert "sk-live" not in fingerprint
