"""
API-specific request and response models for FastAPI endpoints.

Chat-completion bodies are deliberately not modelled here: they are
forwarded as free-form JSON and validated in ProxyService.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from pii_proxy.models.pii_models import RedactionResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DebugRedactRequest(BaseModel):
    """Request for the redaction debug endpoint."""

    text: str = Field(
        description="Text to run through the redaction pipeline",
        examples=["My email is test@example.com"],
    )
    include_raw: bool = Field(
        default=False,
        alias="includeRaw",
        description="Also return the classifier's unprocessed token output",
    )
    model_id: Optional[str] = Field(
        default=None,
        alias="modelId",
        description="Run the raw output through this model instead of the serving one (needs includeRaw)",
        examples=["iiiorg/piiranha-v1-detect-personal-information"],
    )
    quantized: bool = Field(
        default=False,
        description="Load modelId with int8 dynamic quantization",
    )

    model_config = {"populate_by_name": True, "protected_namespaces": ()}


class DebugRedactResponse(BaseModel):
    """Response for the redaction debug endpoint."""

    input: str = Field(description="Text as received")
    redaction: RedactionResult = Field(description="Redacted text, entities and timing")
    raw: Optional[dict[str, Any]] = Field(
        default=None,
        description="Raw classifier output (present only if include_raw)",
    )


class HealthResponse(BaseModel):
    """Response for health check endpoints."""

    status: str = Field(
        description="Overall health status",
        examples=["ok", "degraded"],
    )
    service: str = Field(default="pii-redaction-proxy")
    version: str = Field(examples=["0.1.0"])
    services: dict[str, str] = Field(
        default_factory=dict,
        description="Dependency health",
        examples=[{"classifier": "ok", "store": "ok"}],
    )
    upstream_provider: str = Field(default="openai-compatible")
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="Health check timestamp (UTC)",
    )


class ErrorResponse(BaseModel):
    """Error body returned by the exception handlers."""

    error: str = Field(description="Error category", examples=["Forbidden"])
    message: str = Field(description="Human-readable explanation")
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)
