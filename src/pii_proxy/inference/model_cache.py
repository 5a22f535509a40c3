"""
On-demand in-process classifiers keyed by (model_id, quantized).

Used by the debug endpoint to compare alternative models against the
serving one without restarting. Entries are loaded on first use and the
least recently used one is released once max_entries is exceeded.
"""

import asyncio
from collections import OrderedDict
from typing import Callable

import structlog

from pii_proxy.inference.transformers_classifier import TransformersTokenClassifier

logger = structlog.get_logger(__name__)

ClassifierFactory = Callable[[str, bool], TransformersTokenClassifier]


def _default_factory(model_id: str, quantized: bool) -> TransformersTokenClassifier:
    return TransformersTokenClassifier(model_id, quantized=quantized)


class ClassifierCache:
    """LRU cache of loaded TransformersTokenClassifier instances."""

    def __init__(self, max_entries: int = 2, factory: ClassifierFactory = _default_factory):
        self.max_entries = max(1, max_entries)
        self._factory = factory
        self._entries: OrderedDict[tuple[str, bool], TransformersTokenClassifier] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, model_id: str, quantized: bool = False) -> TransformersTokenClassifier:
        """
        Loaded classifier for model_id, building it on first request.

        Raises:
            ClassifierUnavailableError: The model could not be loaded (not cached)
        """
        key = (model_id, quantized)
        async with self._lock:
            classifier = self._entries.get(key)
            if classifier is not None:
                self._entries.move_to_end(key)
                return classifier

            classifier = self._factory(model_id, quantized)
            await classifier.load()
            self._entries[key] = classifier
            logger.info("Debug classifier cached", model_id=model_id, quantized=quantized)

            while len(self._entries) > self.max_entries:
                (evicted_id, evicted_quantized), evicted = self._entries.popitem(last=False)
                await evicted.close()
                logger.info("Debug classifier evicted", model_id=evicted_id, quantized=evicted_quantized)

            return classifier

    def __len__(self) -> int:
        return len(self._entries)

    async def close(self) -> None:
        async with self._lock:
            for classifier in self._entries.values():
                await classifier.close()
            self._entries.clear()
