"""
HTTP client for the upstream chat-completions provider.

Uses a persistent httpx AsyncClient for connection pooling. Two modes:
- forward_json: plain request/response
- open_stream: sends with stream=True and returns the open response after
  checking the status, so non-2xx upstream answers still become proper
  HTTP errors before any SSE bytes reach the client
"""

import time
from typing import Any, Optional

import httpx
import structlog

from pii_proxy.monitoring.metrics import upstream_latency_seconds, upstream_requests_total
from pii_proxy.proxy.exceptions import UpstreamError

logger = structlog.get_logger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"


class UpstreamClient:
    """
    Forwards redacted chat-completion bodies to the upstream API.

    Usage:
        client = UpstreamClient("https://api.openai.com/v1", api_key="sk-...")
        data = await client.forward_json(body)
        response = await client.open_stream(body)
        async for chunk in response.aiter_bytes(): ...
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 120,
        connection_limits: Optional[httpx.Limits] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

        if connection_limits is None:
            connection_limits = httpx.Limits(
                max_keepalive_connections=20,
                max_connections=100,
                keepalive_expiry=30.0,
            )

        self._client: Optional[httpx.AsyncClient] = None
        self._connection_limits = connection_limits
        self._transport = transport

        logger.info(
            "Upstream client initialized",
            base_url=self.base_url,
            timeout=timeout,
            has_api_key=bool(api_key),
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=self._connection_limits,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def forward_json(self, body: dict[str, Any]) -> dict[str, Any]:
        """
        POST a non-streaming chat completion.

        Raises:
            UpstreamError: Non-2xx status (passed through) or transport failure (502)
        """
        payload = {**body, "stream": False}
        start = time.perf_counter()
        try:
            response = await self._get_client().post(
                CHAT_COMPLETIONS_PATH, json=payload, headers=self._headers()
            )
        except httpx.HTTPError as e:
            upstream_requests_total.labels(mode="json", status="transport_error").inc()
            logger.error("Upstream transport error", error=str(e), error_type=type(e).__name__)
            raise UpstreamError(502, message=f"Upstream unreachable: {type(e).__name__}") from e
        finally:
            upstream_latency_seconds.labels(mode="json").observe(time.perf_counter() - start)

        upstream_requests_total.labels(mode="json", status=str(response.status_code)).inc()
        if response.is_error:
            logger.warning("Upstream returned error status", status=response.status_code)
            raise UpstreamError(response.status_code, body=response.text)

        try:
            return response.json()
        except ValueError as e:
            logger.error("Upstream returned invalid JSON", content_length=len(response.content))
            raise UpstreamError(502, message="Upstream returned invalid JSON") from e

    async def open_stream(self, body: dict[str, Any]) -> httpx.Response:
        """
        POST a streaming chat completion and return the open response.

        The caller owns the response and must aclose() it.

        Raises:
            UpstreamError: Non-2xx status (passed through) or transport failure (502)
        """
        payload = {**body, "stream": True}
        client = self._get_client()
        request = client.build_request(
            "POST", CHAT_COMPLETIONS_PATH, json=payload, headers=self._headers()
        )
        start = time.perf_counter()
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            upstream_requests_total.labels(mode="stream", status="transport_error").inc()
            logger.error("Upstream transport error", error=str(e), error_type=type(e).__name__)
            raise UpstreamError(502, message=f"Upstream unreachable: {type(e).__name__}") from e
        finally:
            upstream_latency_seconds.labels(mode="stream").observe(time.perf_counter() - start)

        upstream_requests_total.labels(mode="stream", status=str(response.status_code)).inc()
        if response.is_error:
            error_body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            logger.warning("Upstream returned error status", status=response.status_code)
            raise UpstreamError(response.status_code, body=error_body)

        return response

    async def close(self):
        """Close the HTTP client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Upstream client closed")
