"""
Remote token classifier client.

Talks to a model server that exposes the token-classification pipeline
over HTTP using an httpx AsyncClient. Supports:
- POST /classify with {"text": ...} returning {"tokens": [...]}
- GET /health for readiness
- Connection pooling through a persistent client

Token dicts use the transformers pipeline shape (entity, word, score,
index and optional start/end), so the same converter is shared with the
in-process backend.
"""

from typing import Optional

import httpx
import structlog

from pii_proxy.inference.base_client import BaseTokenClassifier
from pii_proxy.inference.exceptions import ClassifierUnavailableError
from pii_proxy.inference.transformers_classifier import tokens_from_pipeline_output
from pii_proxy.models.pii_models import RawToken


logger = structlog.get_logger(__name__)


class HttpTokenClassifier(BaseTokenClassifier):
    """
    Classifier client for a remote model server.

    No retries: the redaction deadline is far shorter than any sensible
    backoff, so a failure is reported straight back to RedactionService.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 10,
        connection_limits: Optional[httpx.Limits] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Model server URL (e.g., http://classifier:8080)
            timeout: Transport timeout in seconds
            connection_limits: httpx pool limits (default: 20 max connections)
            transport: Optional custom transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        if connection_limits is None:
            connection_limits = httpx.Limits(
                max_keepalive_connections=10,
                max_connections=20,
                keepalive_expiry=30.0,
            )

        self._client: Optional[httpx.AsyncClient] = None
        self._connection_limits = connection_limits
        self._transport = transport

        logger.info(
            "HTTP classifier client initialized",
            base_url=self.base_url,
            timeout=timeout,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=self._connection_limits,
                transport=self._transport,
            )
            logger.debug("Created new httpx AsyncClient")
        return self._client

    async def classify(self, text: str) -> list[RawToken]:
        client = await self._get_client()
        try:
            response = await client.post("/classify", json={"text": text})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Classifier HTTP error",
                status_code=e.response.status_code,
            )
            raise ClassifierUnavailableError(
                f"Classifier server error: {e.response.status_code}",
                details={"status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error("Classifier connection error", error=str(e))
            raise ClassifierUnavailableError(
                f"Cannot reach classifier at {self.base_url}",
                details={"error": str(e)},
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Classifier returned invalid JSON", content_length=len(response.content))
            raise ClassifierUnavailableError(
                "Classifier returned invalid JSON",
                details={"status": response.status_code},
            ) from e

        tokens = tokens_from_pipeline_output(payload.get("tokens") if isinstance(payload, dict) else payload)
        logger.debug("Classified text", text_length=len(text), token_count=len(tokens))
        return tokens

    async def health_check(self) -> bool:
        try:
            client = await self._get_client()
            response = await client.get("/health", timeout=5.0)
            return response.status_code == 200
        except Exception as e:
            logger.warning("Classifier health check failed", error=str(e))
            return False

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed classifier HTTP client")
        self._client = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url}, timeout={self.timeout}s)"
