"""
PII redaction service: detection under a deadline, then span replacement.

Orchestrates the token classifier, the entity locator and the replacement
generator. Detection is raced against a timer; what happens when the timer
wins is decided by the fail strategy:

- closed (default): InferenceTimeout propagates and the request is blocked
- open: the original, unredacted text is returned with no entities

Replacements are applied right to left (descending start offset) so that
replacing one span never shifts the offsets of the spans still pending.
"""

import asyncio
import time
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from pii_proxy.inference.base_client import BaseTokenClassifier
from pii_proxy.inference.exceptions import InferenceTimeout
from pii_proxy.models.enums import FailStrategy
from pii_proxy.models.pii_models import DetectionResult, PiiEntity, RawToken, RedactionResult
from pii_proxy.monitoring.metrics import (
    inference_latency_seconds,
    inference_timeouts_total,
    pii_entities_detected_total,
)
from pii_proxy.pii.locator import locate_entities
from pii_proxy.pii.replacement import get_deterministic_replacement, get_simple_redaction


logger = structlog.get_logger(__name__)


class RedactionOptions(BaseModel):
    """Redaction behaviour; replaced wholesale by update_options()."""

    model_config = ConfigDict(frozen=True)

    use_deterministic_replacement: bool = True
    salt: str = Field(..., min_length=16)
    timeout_ms: int = Field(default=500, ge=1)
    fail_strategy: FailStrategy = FailStrategy.CLOSED


class RedactionService:
    """
    Detects PII in text and replaces it with pseudonyms or type markers.

    Usage:
        service = RedactionService(classifier, RedactionOptions(salt="..."))
        result = await service.redact("Call me at 555-0100")
        result.text, result.entities
    """

    def __init__(self, classifier: BaseTokenClassifier, options: RedactionOptions):
        self.classifier = classifier
        self.options = options

    async def redact(self, text: str) -> RedactionResult:
        """
        Identify and replace PII entities in text.

        Raises:
            InferenceTimeout: Detection exceeded timeout_ms (fail-closed only)
            InferenceError: The classifier itself failed
        """
        if not text or not text.strip():
            return RedactionResult(text=text, entities=[], processing_time_ms=0)

        try:
            detection = await self._detect_with_timeout(text)
        except InferenceTimeout:
            inference_timeouts_total.labels(strategy=self.options.fail_strategy.value).inc()
            if self.options.fail_strategy is FailStrategy.CLOSED:
                logger.error(
                    "Inference timeout, blocking (fail-closed)",
                    timeout_ms=self.options.timeout_ms,
                    text_length=len(text),
                )
                raise
            logger.warning(
                "Inference timeout, passing through unredacted (fail-open)",
                timeout_ms=self.options.timeout_ms,
                text_length=len(text),
            )
            return RedactionResult(text=text, entities=[], processing_time_ms=self.options.timeout_ms)

        if not detection.entities:
            logger.debug("No PII entities found", text_length=len(text))
            return RedactionResult(text=text, entities=[], processing_time_ms=detection.processing_time_ms)

        redacted_text = self.apply_redactions(text, detection.entities)
        for entity in detection.entities:
            pii_entities_detected_total.labels(pii_type=entity.type.value).inc()

        logger.info(
            "PII redaction complete",
            entity_count=len(detection.entities),
            entity_types=sorted({e.type.value for e in detection.entities}),
            original_length=len(text),
            redacted_length=len(redacted_text),
            processing_time_ms=detection.processing_time_ms,
        )

        return RedactionResult(
            text=redacted_text,
            entities=detection.entities,
            processing_time_ms=detection.processing_time_ms,
        )

    async def detect(self, text: str) -> DetectionResult:
        """Locate entities without replacing them (diagnostic use, no deadline)."""
        if not text or not text.strip():
            return DetectionResult(entities=[], processing_time_ms=0)
        return await self._run_detection(text)

    async def raw_tokens(self, text: str) -> list[RawToken]:
        """Unprocessed classifier output for text."""
        return await self.classifier.classify(text)

    async def _detect_with_timeout(self, text: str) -> DetectionResult:
        # wait_for cancels whichever side loses, so no timer or task outlives the call
        try:
            return await asyncio.wait_for(
                self._run_detection(text),
                timeout=self.options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            raise InferenceTimeout(self.options.timeout_ms) from e

    async def _run_detection(self, text: str) -> DetectionResult:
        start_time = time.perf_counter()
        outcome = "error"
        try:
            tokens = await self.classifier.classify(text)
            entities = locate_entities(tokens, text)
            outcome = "success"
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        finally:
            inference_latency_seconds.labels(outcome=outcome).observe(time.perf_counter() - start_time)

        return DetectionResult(
            entities=entities,
            processing_time_ms=int((time.perf_counter() - start_time) * 1000),
        )

    def replacement_for(self, entity: PiiEntity) -> str:
        if self.options.use_deterministic_replacement:
            return get_deterministic_replacement(entity.text, entity.type, self.options.salt)
        return get_simple_redaction(entity.type)

    def apply_redactions(self, text: str, entities: list[PiiEntity]) -> str:
        """Replace every entity span, processing from the end of the text backwards."""
        redacted_text = text
        for entity in sorted(entities, key=lambda e: e.start, reverse=True):
            if entity.start < 0 or entity.end > len(redacted_text) or entity.start >= entity.end:
                logger.warning(
                    "Out of bounds span for PII entity",
                    entity_type=entity.type.value,
                    span=[entity.start, entity.end],
                    text_length=len(redacted_text),
                )
                continue
            redacted_text = (
                redacted_text[:entity.start] + self.replacement_for(entity) + redacted_text[entity.end:]
            )
        return redacted_text

    def update_options(self, **changes: Any) -> None:
        """Swap options at runtime, e.g. update_options(fail_strategy=FailStrategy.OPEN)."""
        self.options = self.options.model_copy(update=changes)
        logger.info(
            "Redaction options updated",
            changed=sorted(changes),
            fail_strategy=self.options.fail_strategy.value,
            timeout_ms=self.options.timeout_ms,
        )
