"""
Data models for the PII Redaction Proxy.

- enums.py: PiiType taxonomy, fail strategies, risk weights
- pii_models.py: RawToken, PiiEntity, detection/redaction results
- session_models.py: Risk assessment and configuration
- openai_models.py: OpenAI-compatible request bodies, content redaction
"""

from pii_proxy.models.enums import (
    DEFAULT_RISK_POINTS,
    RISK_POINTS,
    FailStrategy,
    PiiType,
    risk_points_for,
)
from pii_proxy.models.openai_models import (
    ChatCompletionRequest,
    ChatMessage,
    redact_message_content,
)
from pii_proxy.models.pii_models import (
    DetectionResult,
    PiiEntity,
    RawToken,
    RedactionResult,
)
from pii_proxy.models.session_models import RiskAssessment, RiskConfig

__all__ = [
    # Enums
    "PiiType",
    "FailStrategy",
    "RISK_POINTS",
    "DEFAULT_RISK_POINTS",
    "risk_points_for",
    # PII
    "RawToken",
    "PiiEntity",
    "DetectionResult",
    "RedactionResult",
    # Session
    "RiskAssessment",
    "RiskConfig",
    # OpenAI
    "ChatMessage",
    "ChatCompletionRequest",
    "redact_message_content",
]
