"""
PII detection data models.

RawToken is what a token classifier hands back: a label, a surface
fragment and a score per sub-word token. Character offsets are optional
because some backends do not report them. PiiEntity is the located,
character-bounded result produced by the entity locator.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pii_proxy.models.enums import PiiType


class RawToken(BaseModel):
    """Single labeled token from the token-classification collaborator."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Raw label, e.g. 'B-EMAIL', 'I-GIVENNAME' or 'O'")
    word: str = Field(..., description="Surface text of the token, may carry '##' or a leading-space marker")
    score: float = Field(..., ge=0.0, le=1.0, description="Classifier confidence")
    index: int = Field(..., ge=0, description="Token position in the tokenized input")
    start: Optional[int] = Field(default=None, ge=0, description="Character offset, when the backend reports it")
    end: Optional[int] = Field(default=None, ge=0, description="Character end offset, when the backend reports it")

    @property
    def has_offsets(self) -> bool:
        return self.start is not None and self.end is not None and self.end > self.start


class PiiEntity(BaseModel):
    """
    PII entity located in a text.

    start/end are half-open character offsets into the scanned text, so
    text[start:end] == entity.text always holds.
    """

    model_config = ConfigDict(frozen=True)

    type: PiiType = Field(..., description="PII type")
    text: str = Field(..., description="The detected PII value as it appears in the text")
    start: int = Field(..., ge=0, description="Start offset (inclusive)")
    end: int = Field(..., ge=0, description="End offset (exclusive)")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Mean token confidence")

    @model_validator(mode="after")
    def check_span(self) -> "PiiEntity":
        if self.start >= self.end:
            raise ValueError(f"Empty or inverted span: [{self.start}, {self.end})")
        return self

    def overlaps(self, start: int, end: int) -> bool:
        return start < self.end and end > self.start


class DetectionResult(BaseModel):
    """Entities found in one text, without touching the text."""

    entities: list[PiiEntity] = Field(default_factory=list)
    processing_time_ms: int = Field(default=0, ge=0)


class RedactionResult(BaseModel):
    """Redacted text plus the entities that were replaced in it."""

    text: str
    entities: list[PiiEntity] = Field(default_factory=list)
    processing_time_ms: int = Field(default=0, ge=0)
