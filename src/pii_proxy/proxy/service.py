"""
Proxy orchestration for chat completions.

Request flow:
1. Rate limit (fixed window per session)
2. Ban gate (session risk >= threshold -> 403)
3. Body validation
4. Per-message redaction; every redaction with findings is scored
5. Upstream call (JSON or SSE)
6. Response redaction: whole choices for JSON, flush by flush for SSE
"""

from typing import Any, AsyncIterator

import httpx
import structlog
from pydantic import ValidationError

from pii_proxy.models.openai_models import ChatCompletionRequest, redact_message_content
from pii_proxy.models.pii_models import PiiEntity
from pii_proxy.monitoring.metrics import rate_limited_requests_total
from pii_proxy.persistence.store import KeyValueStore
from pii_proxy.pii.redactor import RedactionService
from pii_proxy.proxy.exceptions import (
    RateLimitExceeded,
    RequestValidationError,
    SessionBannedError,
)
from pii_proxy.proxy.stream_transformer import StreamRedactionTransformer
from pii_proxy.proxy.upstream_client import UpstreamClient
from pii_proxy.session.risk_engine import SessionService, session_fingerprint

logger = structlog.get_logger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:"


class ProxyService:
    """Wires session gating, redaction and the upstream call together."""

    def __init__(
        self,
        redaction: RedactionService,
        sessions: SessionService,
        upstream: UpstreamClient,
        store: KeyValueStore,
        rate_limit_max: int = 100,
        rate_limit_window_ms: int = 60_000,
        stream_max_tokens: int = 20,
        stream_max_delay_ms: int = 200,
    ):
        self.redaction = redaction
        self.sessions = sessions
        self.upstream = upstream
        self.store = store
        self.rate_limit_max = rate_limit_max
        self.rate_limit_window_seconds = max(1, -(-rate_limit_window_ms // 1000))
        self.stream_max_tokens = stream_max_tokens
        self.stream_max_delay_ms = stream_max_delay_ms

    # === Gating ===

    async def check_rate_limit(self, session_id: str) -> None:
        """
        Count the request in the session's fixed window.

        Raises:
            RateLimitExceeded: More than rate_limit_max requests this window
        """
        if self.rate_limit_max <= 0:
            return

        count = await self.store.incr_window(
            f"{RATE_LIMIT_PREFIX}{session_id}", 1, self.rate_limit_window_seconds
        )
        if count > self.rate_limit_max:
            rate_limited_requests_total.inc()
            logger.warning("Rate limit exceeded", session=session_fingerprint(session_id), count=count)
            raise RateLimitExceeded(self.rate_limit_max, self.rate_limit_window_seconds)

    async def ensure_not_banned(self, session_id: str) -> None:
        score = await self.sessions.get_risk_score(session_id)
        if score >= self.sessions.config.threshold:
            logger.warning("Rejected request from banned session", session=session_fingerprint(session_id), score=score)
            raise SessionBannedError(session_id, score)

    async def admit(self, session_id: str) -> None:
        """Rate limit, then ban check. Runs before any body is parsed."""
        await self.check_rate_limit(session_id)
        await self.ensure_not_banned(session_id)
        await self.sessions.record_request(session_id)

    @staticmethod
    def parse_request(body: Any) -> ChatCompletionRequest:
        if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
            raise RequestValidationError('Body must include "messages" array.')
        try:
            return ChatCompletionRequest.model_validate(body)
        except ValidationError as e:
            raise RequestValidationError(
                "Invalid chat completion request",
                details={"errors": e.errors(include_url=False, include_input=False)},
            ) from e

    # === Redaction ===

    async def _redact_and_score(self, text: str, session_id: str) -> str:
        result = await self.redaction.redact(text)
        if result.entities:
            await self.sessions.assess_risk(session_id, result.entities)
        return result.text

    async def redact_messages(self, messages: list[dict[str, Any]], session_id: str) -> list[dict[str, Any]]:
        """Redact string content and text parts of every message, in order."""

        async def redact_text(text: str) -> str:
            return await self._redact_and_score(text, session_id)

        redacted = []
        for message in messages:
            if message.get("content") is None:
                redacted.append(message)
                continue
            content = await redact_message_content(message["content"], redact_text)
            redacted.append({**message, "content": content})
        return redacted

    async def redact_response(self, response: dict[str, Any], session_id: str) -> dict[str, Any]:
        """Redact every choice's message content of a non-streamed response."""

        async def redact_text(text: str) -> str:
            return await self._redact_and_score(text, session_id)

        choices = response.get("choices")
        if not isinstance(choices, list):
            return response

        for choice in choices:
            message = choice.get("message") if isinstance(choice, dict) else None
            if not isinstance(message, dict) or not message.get("content"):
                continue
            message["content"] = await redact_message_content(message["content"], redact_text)
        return response

    # === Handlers ===

    async def _prepare_body(self, body: Any, session_id: str) -> dict[str, Any]:
        self.parse_request(body)
        redacted_messages = await self.redact_messages(body["messages"], session_id)
        return {**body, "messages": redacted_messages}

    async def handle_chat_completion(self, body: Any, session_id: str) -> dict[str, Any]:
        """Non-streamed chat completion with redaction in both directions."""
        upstream_body = await self._prepare_body(body, session_id)
        response = await self.upstream.forward_json(upstream_body)
        return await self.redact_response(response, session_id)

    async def handle_stream(self, body: Any, session_id: str) -> AsyncIterator[bytes]:
        """
        Streamed chat completion.

        The upstream response is opened before returning, so upstream and
        validation errors surface as exceptions rather than as a broken
        event stream.
        """
        upstream_body = await self._prepare_body(body, session_id)
        response = await self.upstream.open_stream(upstream_body)

        async def score(entities: list[PiiEntity]) -> None:
            await self.sessions.assess_risk(session_id, entities)

        transformer = StreamRedactionTransformer(
            self.redaction,
            max_tokens=self.stream_max_tokens,
            max_delay_ms=self.stream_max_delay_ms,
            on_entities=score,
        )
        return transformer.transform(_iter_upstream(response))


async def _iter_upstream(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()
