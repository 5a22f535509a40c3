"""Session risk data models."""

from pydantic import BaseModel, ConfigDict, Field


class RiskAssessment(BaseModel):
    """Outcome of scoring a batch of entities against a session."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, description="Cumulative score within the current window")
    is_banned: bool = Field(..., description="True once score reaches the configured threshold")
    points_added: int = Field(..., ge=0, description="Points contributed by this assessment")


class RiskConfig(BaseModel):
    """Threshold and rolling window for session risk scoring."""

    model_config = ConfigDict(frozen=True)

    threshold: int = Field(..., ge=1)
    window_ms: int = Field(..., ge=1)

    @property
    def window_seconds(self) -> int:
        # Store TTLs are whole seconds; round up so a window never shrinks
        return -(-self.window_ms // 1000)
