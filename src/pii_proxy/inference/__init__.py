"""
Token-classification clients.

Components:
- BaseTokenClassifier: Abstract base class for classifier backends
- TransformersTokenClassifier: In-process Hugging Face pipeline
- HttpTokenClassifier: Remote model server over HTTP
- ClassifierCache: On-demand per-model classifiers for debugging
- exceptions: Inference-specific exceptions
"""

from pii_proxy.inference.base_client import BaseTokenClassifier
from pii_proxy.inference.exceptions import (
    ClassifierUnavailableError,
    InferenceError,
    InferenceTimeout,
)
from pii_proxy.inference.http_classifier import HttpTokenClassifier
from pii_proxy.inference.model_cache import ClassifierCache
from pii_proxy.inference.transformers_classifier import (
    TransformersTokenClassifier,
    tokens_from_pipeline_output,
)

__all__ = [
    "BaseTokenClassifier",
    "TransformersTokenClassifier",
    "HttpTokenClassifier",
    "ClassifierCache",
    "tokens_from_pipeline_output",
    "InferenceError",
    "InferenceTimeout",
    "ClassifierUnavailableError",
]
