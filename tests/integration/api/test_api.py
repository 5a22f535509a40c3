"""
Integration tests for the FastAPI application.

These tests use TestClient to exercise the full request path (middleware,
dependencies, error handlers, redaction, session scoring) without any
running services: the classifier is a stub and the upstream is mocked.
"""

import json
from unittest.mock import MagicMock, patch

from pii_proxy.inference.transformers_classifier import TransformersTokenClassifier
from pii_proxy.models.enums import PiiType
from pii_proxy.pii.replacement import get_deterministic_replacement


def chat(client, content, api_key="key-1", **extra):
    body = {"model": "gpt-test", "messages": [{"role": "user", "content": content}], **extra}
    return client.post("/v1/chat/completions", json=body, headers={"x-api-key": api_key})


def sse_frame(content=None, role=None) -> bytes:
    delta = {}
    if role:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    chunk = {"id": "c1", "object": "chat.completion.chunk", "created": 1, "model": "m",
             "choices": [{"index": 0, "delta": delta}]}
    return f"data: {json.dumps(chunk)}\n\n".encode()


def test_root_endpoint(make_client):
    with make_client() as client:
        response = client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "PII Redaction Proxy"
    assert data["chat_completions"] == "/v1/chat/completions"
    assert data["metrics"] is None


def test_health_endpoints(make_client):
    with make_client() as client:
        for path in ("/health", "/v1/health"):
            response = client.get(path)

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "ok"
            assert data["services"] == {"classifier": "ok", "store": "ok"}
            assert data["service"] == "pii-redaction-proxy"


def test_health_unhealthy_without_classifier(make_client, stub_classifier_factory):
    classifier = stub_classifier_factory({})
    classifier.healthy = False

    with make_client(classifier=classifier) as client:
        response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_request_id_header(make_client):
    with make_client() as client:
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


class TestDebugRedact:

    def test_redacts_text(self, make_client, test_settings):
        with make_client() as client:
            response = client.post("/debug/redact", json={"text": "Email test@example.com now"})

        assert response.status_code == 200
        data = response.json()
        fake_email = get_deterministic_replacement("test@example.com", PiiType.EMAIL, test_settings.SALT)
        assert data["input"] == "Email test@example.com now"
        assert data["redaction"]["text"] == f"Email {fake_email} now"
        entity = data["redaction"]["entities"][0]
        assert (entity["type"], entity["start"], entity["end"]) == ("EMAIL", 6, 22)
        assert "raw" not in data

    def test_include_raw(self, make_client):
        with make_client() as client:
            response = client.post("/debug/redact", json={"text": "hello Alice", "includeRaw": True})

        raw = response.json()["raw"]
        assert [token["label"] for token in raw["tokens"]] == ["O", "B-GIVENNAME"]
        assert raw["model_id"] == "default"

    def test_include_raw_with_model_id_uses_cached_pipeline(self, make_client):
        fake_pipeline = MagicMock(return_value=[{"entity": "B-EMAIL", "score": 0.9, "index": 1, "word": "a@b.c"}])
        fake_pipeline.model.config.id2label = {0: "O", 1: "B-EMAIL"}
        body = {"text": "mail a@b.c", "includeRaw": True, "modelId": "org/other-model", "quantized": True}

        with patch.object(TransformersTokenClassifier, "_build_pipeline", return_value=fake_pipeline) as build:
            with make_client() as client:
                first = client.post("/debug/redact", json=body)
                second = client.post("/debug/redact", json=body)

        assert first.status_code == second.status_code == 200
        raw = first.json()["raw"]
        assert (raw["model_id"], raw["quantized"]) == ("org/other-model", True)
        assert raw["tokens"][0]["word"] == "a@b.c"
        assert build.call_count == 1

    def test_unloadable_model_id_is_502(self, make_client):
        body = {"text": "hello", "includeRaw": True, "modelId": "missing/model"}

        with patch.object(TransformersTokenClassifier, "_build_pipeline", side_effect=OSError("not found")):
            with make_client() as client:
                response = client.post("/debug/redact", json=body)

        assert response.status_code == 502

    def test_empty_text_rejected(self, make_client):
        with make_client() as client:
            response = client.post("/debug/redact", json={"text": "   "})

        assert response.status_code == 400
        assert response.json()["error"] == "Bad Request"

    def test_does_not_score_session(self, make_client):
        with make_client(RISK_THRESHOLD=10) as client:
            for _ in range(3):
                client.post("/debug/redact", json={"text": "hunter2"}, headers={"x-api-key": "key-1"})
            response = chat(client, "hello")

        assert response.status_code == 200


class TestChatCompletions:

    def test_json_completion_redacted_both_ways(self, make_client, fake_upstream, test_settings):
        fake_upstream.reply = "Hello Alice, I will call 555-0100."

        with make_client() as client:
            response = chat(client, "I am Alice, SSN 123-45-6789.", temperature=0.3)

        assert response.status_code == 200
        fake_name = get_deterministic_replacement("Alice", PiiType.PERSON, test_settings.SALT)
        fake_ssn = get_deterministic_replacement("123-45-6789", PiiType.SSN, test_settings.SALT)

        forwarded = fake_upstream.bodies[0]
        assert forwarded["messages"][0]["content"] == f"I am {fake_name}, SSN {fake_ssn}."
        assert forwarded["temperature"] == 0.3

        answer = response.json()["choices"][0]["message"]["content"]
        assert "Alice" not in answer
        assert "555-0100" not in answer
        assert answer.startswith(f"Hello {fake_name},")
        assert response.json()["usage"]["total_tokens"] == 7

    def test_streamed_completion(self, make_client, fake_upstream):
        fake_upstream.stream_frames = [
            sse_frame(role="assistant", content=""),
            sse_frame("My password is "),
            sse_frame("hunter2. "),
            sse_frame("Bye"),
            b"data: [DONE]\n\n",
        ]

        with make_client() as client:
            response = chat(client, "hi", stream=True)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert "hunter2" not in response.text
        assert response.text.endswith("data: [DONE]\n\n")

        contents = []
        for line in response.text.splitlines():
            if line.startswith("data: {"):
                delta = json.loads(line[len("data: "):])["choices"][0]["delta"]
                contents.append(delta.get("content", ""))
        joined = "".join(contents)
        assert joined.startswith("My password is ")
        assert joined.endswith("Bye")

    def test_missing_messages(self, make_client, fake_upstream):
        with make_client() as client:
            response = client.post("/v1/chat/completions", json={"model": "m"})

        assert response.status_code == 400
        assert fake_upstream.bodies == []

    def test_invalid_json(self, make_client):
        with make_client() as client:
            response = client.post(
                "/v1/chat/completions",
                content=b"{not json",
                headers={"content-type": "application/json"},
            )

        assert response.status_code == 400

    def test_session_banned_after_threshold(self, make_client, fake_upstream):
        with make_client(RISK_THRESHOLD=40) as client:
            first = chat(client, "password hunter2 and 123-45-6789")
            second = chat(client, "hello")
            other_session = chat(client, "hello", api_key="key-2")

        assert first.status_code == 200
        assert second.status_code == 403
        assert "excessive PII exposure" in second.json()["message"]
        assert other_session.status_code == 200
        assert len(fake_upstream.bodies) == 2

    def test_rate_limited(self, make_client):
        with make_client(RATE_LIMIT_MAX=2) as client:
            responses = [chat(client, "hello") for _ in range(3)]

        assert [r.status_code for r in responses] == [200, 200, 429]
        assert responses[2].headers["Retry-After"] == "60"

    def test_upstream_error_passthrough(self, make_client, fake_upstream):
        fake_upstream.status_code = 401
        fake_upstream.error_body = '{"error": "invalid api key"}'

        with make_client() as client:
            response = chat(client, "hello")

        assert response.status_code == 401
        assert response.json()["message"] == '{"error": "invalid api key"}'

    def test_inference_timeout_fails_closed(self, make_client, stub_classifier_factory, fake_upstream):
        slow = stub_classifier_factory({"Alice": "GIVENNAME"}, delay=0.5)

        with make_client(classifier=slow, INFERENCE_TIMEOUT_MS=20) as client:
            response = chat(client, "I am Alice")

        assert response.status_code == 503
        assert fake_upstream.bodies == []

    def test_inference_timeout_fails_open(self, make_client, stub_classifier_factory, fake_upstream):
        slow = stub_classifier_factory({"Alice": "GIVENNAME"}, delay=0.5)

        with make_client(classifier=slow, INFERENCE_TIMEOUT_MS=20, FAIL_STRATEGY="open") as client:
            response = chat(client, "I am Alice")

        assert response.status_code == 200
        assert fake_upstream.bodies[0]["messages"][0]["content"] == "I am Alice"


def test_invalid_request_id_is_replaced(make_client):
    with make_client() as client:
        response = client.get("/health", headers={"X-Request-ID": "bad id with spaces"})

    assert response.headers["X-Request-ID"] != "bad id with spaces"
    assert len(response.headers["X-Request-ID"]) == 32
