"""
In-process token classifier backed by a Hugging Face transformers pipeline.

The pipeline runs without aggregation so every sub-word token is returned
with its own BIO label; grouping and span recovery are done by the entity
locator. Inference is CPU/GPU bound and synchronous, so it runs in a worker
thread to keep the event loop responsive.
"""

import asyncio
import time
from typing import Any, Optional

import structlog

from pii_proxy.inference.base_client import BaseTokenClassifier
from pii_proxy.inference.exceptions import ClassifierUnavailableError
from pii_proxy.models.pii_models import RawToken


logger = structlog.get_logger(__name__)


def tokens_from_pipeline_output(predictions: Any) -> list[RawToken]:
    """
    Convert raw transformers pipeline output into RawToken objects.

    Items missing a label or word are skipped. Offsets are kept only when
    the tokenizer reported them (fast tokenizers do, slow ones return None).
    """
    tokens: list[RawToken] = []
    if not isinstance(predictions, list):
        return tokens

    for position, item in enumerate(predictions):
        if not isinstance(item, dict):
            continue
        label = str(item.get("entity", item.get("entity_group", ""))).strip()
        word = item.get("word")
        if not label or not isinstance(word, str):
            continue

        start = item.get("start")
        end = item.get("end")
        tokens.append(
            RawToken(
                label=label,
                word=word,
                score=min(1.0, max(0.0, float(item.get("score", 0.0)))),
                index=int(item.get("index", position)),
                start=int(start) if start is not None else None,
                end=int(end) if end is not None else None,
            )
        )
    return tokens


class TransformersTokenClassifier(BaseTokenClassifier):
    """
    Token classifier running a Hugging Face model in-process.

    Usage:
        classifier = TransformersTokenClassifier("iiiorg/piiranha-v1-detect-personal-information")
        await classifier.load()
        tokens = await classifier.classify("My email is test@example.com")
    """

    def __init__(self, model_id: str, device: int = -1, quantized: bool = False):
        """
        Args:
            model_id: Hub model id or local path
            device: transformers device index (-1 for CPU)
            quantized: Apply int8 dynamic quantization to the linear layers
        """
        self.model_id = model_id
        self.device = device
        self.quantized = quantized
        self._pipeline: Optional[Any] = None
        self._load_error: Optional[str] = None

    async def load(self) -> None:
        """Load tokenizer and model. Safe to call more than once."""
        if self._pipeline is not None:
            logger.warning("Model already loaded", model_id=self.model_id)
            return

        logger.info("Loading PII detection model", model_id=self.model_id, quantized=self.quantized)
        start_time = time.time()
        try:
            self._pipeline = await asyncio.to_thread(self._build_pipeline)
        except Exception as exc:
            self._load_error = f"{type(exc).__name__}: {exc}"
            logger.error("Model load failed", model_id=self.model_id, error=self._load_error)
            raise ClassifierUnavailableError(
                f"Unable to load model {self.model_id}",
                details={"error": self._load_error},
            ) from exc

        logger.info(
            "Model loaded",
            model_id=self.model_id,
            load_time_ms=int((time.time() - start_time) * 1000),
        )

    def _build_pipeline(self) -> Any:
        from transformers import pipeline

        pipe = pipeline(
            task="token-classification",
            model=self.model_id,
            aggregation_strategy="none",
            device=self.device,
        )
        if self.quantized:
            import torch

            pipe.model = torch.quantization.quantize_dynamic(pipe.model, {torch.nn.Linear}, dtype=torch.qint8)
        return pipe

    async def classify(self, text: str) -> list[RawToken]:
        if self._pipeline is None:
            raise ClassifierUnavailableError(
                "Model not loaded. Call load() first.",
                details={"model_id": self.model_id, "load_error": self._load_error},
            )

        predictions = await asyncio.to_thread(self._pipeline, text)
        tokens = tokens_from_pipeline_output(predictions)
        logger.debug("Classified text", text_length=len(text), token_count=len(tokens))
        return tokens

    async def raw_output(self, text: str) -> dict[str, Any]:
        """
        Unfiltered pipeline output plus the model's label map (debug use).

        'O' tokens are included, unlike classify().
        """
        if self._pipeline is None:
            raise ClassifierUnavailableError("Model not loaded. Call load() first.")

        predictions = await asyncio.to_thread(self._pipeline, text, ignore_labels=[])
        config = getattr(getattr(self._pipeline, "model", None), "config", None)
        return {
            "model_id": self.model_id,
            "quantized": self.quantized,
            "tokens": [
                {**item, "score": float(item.get("score", 0.0))}
                for item in predictions
                if isinstance(item, dict)
            ],
            "id2label": getattr(config, "id2label", None),
        }

    async def health_check(self) -> bool:
        return self._pipeline is not None

    async def close(self):
        self._pipeline = None
        logger.debug("Released transformers pipeline", model_id=self.model_id)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model_id={self.model_id}, device={self.device}, quantized={self.quantized})"
