"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests:
settings, stub classifiers that need no model download, and an in-memory store.
"""

import asyncio
from typing import Optional

import pytest

from pii_proxy.config import Settings
from pii_proxy.inference.base_client import BaseTokenClassifier
from pii_proxy.models.enums import FailStrategy
from pii_proxy.models.pii_models import RawToken
from pii_proxy.persistence.store import InMemoryStore
from pii_proxy.pii.redactor import RedactionOptions, RedactionService

TEST_SALT = "unit-test-salt-0123456789"

TRAILING_PUNCTUATION = ".,!?;:"


class KeywordClassifier(BaseTokenClassifier):
    """Stub classifier that labels whitespace-separated words from a lookup table.

    Words are emitted as tokens in order (index = word position) with a
    leading-space marker after the first word, the way a decoded WordPiece
    tokenizer reports them. Unlisted words are labeled 'O'.

        KeywordClassifier({"123-45-6789": "SOCIALNUM"})
    """

    def __init__(self, labels: dict[str, str], delay: float = 0.0, healthy: bool = True):
        self.labels = labels
        self.delay = delay
        self.healthy = healthy
        self.calls: list[str] = []

    async def classify(self, text: str) -> list[RawToken]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)

        tokens = []
        for index, word in enumerate(text.split()):
            bare = word.rstrip(TRAILING_PUNCTUATION)
            label = self.labels.get(bare)
            tokens.append(
                RawToken(
                    label=f"B-{label}" if label else "O",
                    word=(" " if index else "") + bare,
                    score=0.99 if label else 0.5,
                    index=index,
                )
            )
        return tokens

    async def health_check(self) -> bool:
        return self.healthy


class FixedTokenClassifier(BaseTokenClassifier):
    """Stub classifier returning a preset token list for every text."""

    def __init__(self, tokens: list[RawToken], delay: float = 0.0):
        self.tokens = tokens
        self.delay = delay

    async def classify(self, text: str) -> list[RawToken]:
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.tokens)

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Override specific settings in individual tests with model_copy:
        test_settings.model_copy(update={"RISK_THRESHOLD": 40})
    """
    return Settings(
        # === Application ===
        APP_NAME="PII Redaction Proxy (Test)",
        APP_VERSION="0.1.0",
        DEBUG=True,
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === Upstream ===
        UPSTREAM_URL="http://upstream.test/v1",
        UPSTREAM_API_KEY="sk-test",

        # === Classifier ===
        CLASSIFIER_BACKEND="http",
        CLASSIFIER_URL="http://classifier.test",

        # === Redaction ===
        SALT=TEST_SALT,
        USE_DETERMINISTIC_REPLACEMENT=True,
        FAIL_STRATEGY="closed",
        INFERENCE_TIMEOUT_MS=500,

        # === Session / rate limit ===
        RISK_THRESHOLD=100,
        RISK_WINDOW_MS=3_600_000,
        RATE_LIMIT_MAX=100,
        RATE_LIMIT_WINDOW_MS=60_000,

        # === Redis ===
        REDIS_URL=None,  # In-memory store for tests

        PROMETHEUS_ENABLED=False,  # Disable metrics in tests unless explicitly needed
    )


@pytest.fixture
def pii_labels() -> dict[str, str]:
    """Word -> classifier label table used by the keyword classifier."""
    return {
        "Alice": "GIVENNAME",
        "Smith": "SURNAME",
        "test@example.com": "EMAIL",
        "alice@example.com": "EMAIL",
        "123-45-6789": "SOCIALNUM",
        "555-0100": "TELEPHONENUM",
        "hunter2": "PASSWORD",
    }


@pytest.fixture
def keyword_classifier(pii_labels) -> KeywordClassifier:
    return KeywordClassifier(pii_labels)


@pytest.fixture
def redaction_options() -> RedactionOptions:
    return RedactionOptions(
        use_deterministic_replacement=True,
        salt=TEST_SALT,
        timeout_ms=500,
        fail_strategy=FailStrategy.CLOSED,
    )


@pytest.fixture
def redaction_service(keyword_classifier, redaction_options) -> RedactionService:
    return RedactionService(keyword_classifier, redaction_options)


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(fake_clock) -> InMemoryStore:
    """In-memory store driven by the fake clock."""
    return InMemoryStore(clock=fake_clock)


@pytest.fixture
def stub_classifier_factory():
    """Access to the stub classifier classes from test modules."""

    def factory(labels: Optional[dict[str, str]] = None, tokens: Optional[list[RawToken]] = None, delay: float = 0.0):
        if tokens is not None:
            return FixedTokenClassifier(tokens, delay=delay)
        return KeywordClassifier(labels or {}, delay=delay)

    return factory
