"""
Abstract base client for token classification.

Defines the interface that all classifier backends (in-process transformers
pipeline, remote HTTP model server, test stubs) must adhere to. The
redaction service receives an instance at construction time, so swapping
backends never touches the redaction or streaming code.
"""

from abc import ABC, abstractmethod
from typing import Any

import structlog

from pii_proxy.models.pii_models import RawToken


logger = structlog.get_logger(__name__)


class BaseTokenClassifier(ABC):
    """
    Abstract base class for token-classification clients.

    Responsibilities:
    - Run the PII model over a text
    - Return one RawToken per labeled sub-word token
    - Report health for the /health endpoint

    Does NOT handle:
    - Grouping tokens into entities (that's the entity locator's job)
    - Timeouts and fail strategies (that's RedactionService's job)

    Implementations must not assume callers need offsets: RawToken.start and
    RawToken.end may be left unset.
    """

    @abstractmethod
    async def classify(self, text: str) -> list[RawToken]:
        """
        Classify every token of text.

        Args:
            text: Text to scan

        Returns:
            Tokens in input order. Tokens labeled 'O' may be omitted.

        Raises:
            ClassifierUnavailableError: Model not loaded or server unreachable
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check whether the classifier can serve requests.

        Returns:
            True if ready, False otherwise. Never raises.
        """
        pass

    async def raw_output(self, text: str) -> dict[str, Any]:
        """Classifier output as plain JSON data, for the debug endpoint."""
        tokens = await self.classify(text)
        return {
            "model_id": None,
            "quantized": False,
            "tokens": [token.model_dump(exclude_none=True) for token in tokens],
            "id2label": None,
        }

    async def close(self):
        """Release model or connection resources. Default does nothing."""
        logger.debug("Closing token classifier", client_class=self.__class__.__name__)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
