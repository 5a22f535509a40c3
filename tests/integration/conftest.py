"""Integration test fixtures (service checks and app wiring).

Provides an app factory that runs the real FastAPI stack against a stub
classifier, an in-memory store and a mocked upstream. Tests that need a
live Redis are skipped when none is reachable.
"""

import json
from contextlib import contextmanager

import httpx
import pytest
from fastapi.testclient import TestClient
from redis import Redis

from pii_proxy.main import create_app
from pii_proxy.persistence.store import InMemoryStore

REDIS_TEST_URL = "redis://localhost:6379/15"  # Dedicated db, flushed after each test


@pytest.fixture(scope="session")
def check_redis():
    """Check if Redis is available at localhost:6379.

    Skips tests if Redis is not reachable.
    """
    try:
        client = Redis.from_url(REDIS_TEST_URL)
        client.ping()
        client.close()
    except Exception as e:
        pytest.skip(f"Redis not available: {e}")
    return REDIS_TEST_URL


class FakeUpstream:
    """Mock OpenAI-compatible provider recording the bodies it receives."""

    def __init__(self):
        self.bodies = []
        self.status_code = 200
        self.error_body = ""
        self.reply = "Noted."
        self.stream_frames: list[bytes] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.bodies.append(body)

        if self.status_code != 200:
            return httpx.Response(self.status_code, text=self.error_body)
        if body.get("stream"):
            return httpx.Response(
                200,
                content=b"".join(self.stream_frames),
                headers={"content-type": "text/event-stream"},
            )
        return httpx.Response(
            200,
            json={
                "id": "chatcmpl-test",
                "object": "chat.completion",
                "model": body.get("model", "test-model"),
                "choices": [
                    {"index": 0, "message": {"role": "assistant", "content": self.reply}, "finish_reason": "stop"}
                ],
                "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
            },
        )


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_client(test_settings, keyword_classifier, fake_upstream):
    """Build a TestClient around a freshly wired app.

    Usage:
        with make_client(RISK_THRESHOLD=40) as client:
            client.post(...)
    """

    @contextmanager
    def factory(classifier=None, store=None, **overrides):
        app = create_app(
            test_settings.model_copy(update=overrides),
            classifier=classifier if classifier is not None else keyword_classifier,
            store=store if store is not None else InMemoryStore(),
            upstream_transport=httpx.MockTransport(fake_upstream),
        )
        with TestClient(app) as client:
            yield client

    return factory
