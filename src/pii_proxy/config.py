"""
Configuration settings for the PII Redaction Proxy.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development (see .env.example).
"""

from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "PII Redaction Proxy"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # === Upstream (OpenAI-compatible gateway or provider) ===
    UPSTREAM_URL: str = "https://api.openai.com/v1"
    UPSTREAM_API_KEY: Optional[str] = None
    UPSTREAM_TIMEOUT: int = 120  # seconds

    # === PII Classifier ===
    CLASSIFIER_BACKEND: Literal["transformers", "http"] = "transformers"
    MODEL_ID: str = "iiiorg/piiranha-v1-detect-personal-information"
    CLASSIFIER_URL: str = "http://classifier:8080"  # Only used by the http backend
    CLASSIFIER_TIMEOUT: int = 10  # seconds, transport-level
    DEBUG_MODEL_CACHE_SIZE: int = 2  # Extra models /debug/redact may keep loaded

    # === Redaction ===
    SALT: str = "dev-salt-change-in-production-1234567890"
    USE_DETERMINISTIC_REPLACEMENT: bool = True
    FAIL_STRATEGY: Literal["closed", "open"] = "closed"
    INFERENCE_TIMEOUT_MS: int = 500

    # === Streaming ===
    STREAM_MAX_TOKENS: int = 20  # Estimated tokens buffered before a forced flush
    STREAM_MAX_DELAY_MS: int = 200  # Worst-case latency added per flush

    # === Session Risk ===
    RISK_THRESHOLD: int = 100
    RISK_WINDOW_MS: int = 3_600_000  # 1 hour

    # === Rate Limiting ===
    RATE_LIMIT_MAX: int = 100  # 0 disables the limiter
    RATE_LIMIT_WINDOW_MS: int = 60_000

    # === Redis ===
    REDIS_URL: Optional[str] = None  # In-memory store when unset
    REDIS_MAX_CONNECTIONS: int = 50

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True

    @field_validator("SALT")
    @classmethod
    def salt_min_length(cls, value: str) -> str:
        if len(value) < 16:
            raise ValueError("SALT must be at least 16 characters")
        return value

    @field_validator("UPSTREAM_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


# Global settings instance
settings = Settings()
