"""End-to-end tests for the gateway routes.

The real app is used with the Turnstile verifier and the upstream client
replaced by fakes (see conftest). Every gated request runs the full chain:
rate limit, verification, validation, then the upstream call.
"""

from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from app.adapters.generation import UpstreamCallError
from app.adapters.turnstile import VerificationOutcome
from app.core.config import settings
from conftest import VALID_TOKEN, FakeGenerationClient, FakeVerifier


def gated(body: dict) -> dict:
    return {**body, "turnstileToken": VALID_TOKEN}


GATED_ENDPOINTS = [
    ("/api/text-to-image", {"prompt": "a cat"}),
    ("/api/image-to-image", {"prompt": "a cat", "imageUrl": "https://example.com/cat.png"}),
    ("/api/text-to-text", {"text": "hello"}),
    ("/api/text-to-speech", {"text": "hello"}),
    (
        "/api/speech-to-text",
        {"audioData": "data:audio/mpeg;base64," + base64.b64encode(bytes(1_600)).decode()},
    ),
    ("/api/generate-image-prompt", {"subject": "portrait"}),
]


class TestGatedEndpoints:
    @pytest.mark.parametrize(("path", "body"), GATED_ENDPOINTS)
    def test_success_with_valid_token(self, client: TestClient, path: str, body: dict) -> None:
        resp = client.post(path, json=gated(body))

        assert resp.status_code == 200, resp.text
        assert resp.json()["success"] is True
        assert resp.headers["X-RateLimit-Limit"] == "20"

    @pytest.mark.parametrize(("path", "body"), GATED_ENDPOINTS)
    def test_missing_token_is_rejected_before_validation(
        self,
        client: TestClient,
        fake_generation_client: FakeGenerationClient,
        path: str,
        body: dict,
    ) -> None:
        resp = client.post(path, json=body)

        assert resp.status_code == 400
        assert resp.json()["code"] == "TURNSTILE_MISSING"
        assert fake_generation_client.calls == []

    def test_failed_verification_never_reaches_upstream(
        self,
        client: TestClient,
        fake_verifier: FakeVerifier,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        fake_verifier.outcome = VerificationOutcome.failed("invalid-input-response")

        resp = client.post("/api/text-to-image", json=gated({"prompt": "a cat"}))

        assert resp.status_code == 403
        body = resp.json()
        assert body["code"] == "TURNSTILE_FAILED"
        assert body["message"] == "Verification has expired, please try again"
        assert fake_generation_client.calls == []

    def test_verification_runs_before_validation(self, client: TestClient, fake_verifier: FakeVerifier) -> None:
        fake_verifier.outcome = VerificationOutcome.failed("bad-request")

        resp = client.post("/api/text-to-image", json=gated({"prompt": "a" * 5000, "bogus": 1}))

        assert resp.status_code == 403

    def test_unknown_field_is_rejected(self, client: TestClient) -> None:
        resp = client.post(
            "/api/text-to-image",
            json=gated({"prompt": "cat", "width": "512", "height": "512", "unexpectedField": "x"}),
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert "unexpectedField" in body["message"]
        assert body["field"] == "body"

    def test_prompt_too_long(self, client: TestClient) -> None:
        resp = client.post("/api/text-to-image", json=gated({"prompt": "a" * 1001}))

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "PROMPT_TOO_LONG"
        assert body["field"] == "prompt"

    def test_audio_format_not_supported(self, client: TestClient) -> None:
        audio = "data:audio/mpeg;base64," + base64.b64encode(bytes(100)).decode()

        resp = client.post("/api/speech-to-text", json=gated({"audioData": audio, "format": "ogg"}))

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "INVALID_AUDIO_FORMAT"
        assert body["message"] == "Audio format must be mp3, wav, m4a, or webm"

    def test_invalid_json_body(self, client: TestClient) -> None:
        resp = client.post(
            "/api/text-to-image",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid request body format"

    def test_text_to_image_response_shape(self, client: TestClient) -> None:
        resp = client.post("/api/text-to-image", json=gated({"prompt": "<b>a cat</b>", "width": 512}))

        body = resp.json()
        assert body["imageData"].startswith("data:image/jpeg;base64,")
        assert body["prompt"] == "ba cat/b"
        assert body["width"] == 512
        assert body["height"] == 1024
        assert body["seed"] == 42

    def test_upstream_timeout_is_504(self, client: TestClient, fake_generation_client: FakeGenerationClient) -> None:
        fake_generation_client.error = UpstreamCallError("text", "slow", timed_out=True)

        resp = client.post("/api/text-to-text", json=gated({"text": "hello"}))

        assert resp.status_code == 504
        assert resp.json()["code"] == "GATEWAY_TIMEOUT"


class TestRateLimitOrdering:
    def test_twenty_first_request_is_limited_before_verification(
        self,
        client: TestClient,
        fake_verifier: FakeVerifier,
    ) -> None:
        responses = [client.post("/api/text-to-image", json=gated({"prompt": "a cat"})) for _ in range(21)]

        assert [r.status_code for r in responses[:20]] == [200] * 20
        assert responses[19].headers["X-RateLimit-Remaining"] == "0"

        limited = responses[20]
        assert limited.status_code == 429
        assert limited.json()["code"] == "TOO_MANY_REQUESTS"
        assert len(fake_verifier.calls) == 20

    def test_failed_requests_still_count(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_requests", 2)

        client.post("/api/text-to-image", json={"prompt": "no token"})
        client.post("/api/text-to-image", json={"prompt": "no token"})
        resp = client.post("/api/text-to-image", json=gated({"prompt": "a cat"}))

        assert resp.status_code == 429

    def test_exhausting_one_endpoint_leaves_others_alone(
        self,
        client: TestClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_requests", 2)

        for _ in range(2):
            client.post("/api/text-to-text", json=gated({"text": "hello"}))
        blocked = client.post("/api/text-to-text", json=gated({"text": "hello"}))
        speech = client.post("/api/text-to-speech", json=gated({"text": "hello"}))

        assert blocked.status_code == 429
        assert speech.status_code == 200
        assert speech.headers["X-RateLimit-Remaining"] == "1"


class TestOptimizePrompt:
    def test_is_not_verification_gated(self, client: TestClient, fake_verifier: FakeVerifier) -> None:
        resp = client.post("/api/text-to-image/optimize-prompt", json={"prompt": "a cat"})

        assert resp.status_code == 200
        assert resp.json()["optimizedPrompt"] == "processed text"
        assert fake_verifier.calls == []

    def test_is_rate_limited(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_requests", 1)

        client.post("/api/text-to-image/optimize-prompt", json={"prompt": "a cat"})
        resp = client.post("/api/text-to-image/optimize-prompt", json={"prompt": "a cat"})

        assert resp.status_code == 429

    def test_does_not_consume_image_quota(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_requests", 2)

        for _ in range(3):
            client.post("/api/text-to-image/optimize-prompt", json={"prompt": "a cat"})
        resp = client.post("/api/text-to-image", json=gated({"prompt": "a cat"}))

        assert resp.status_code == 200


class TestTurnstileDiagnostics:
    def test_reports_outcome(self, client: TestClient) -> None:
        resp = client.post(
            "/api/test-turnstile",
            json={"turnstileToken": VALID_TOKEN},
            headers={"x-real-ip": "192.0.2.10"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["clientIp"] == "192.0.2.10"
        assert body["verification"]["hostname"] == "localhost"

    def test_failed_outcome_is_still_200(self, client: TestClient, fake_verifier: FakeVerifier) -> None:
        fake_verifier.outcome = VerificationOutcome.failed("invalid-input-response")

        body = client.post("/api/test-turnstile", json={"turnstileToken": "bad"}).json()

        assert body["success"] is False
        assert body["verification"]["errorCodes"] == ["invalid-input-response"]

    def test_missing_token(self, client: TestClient) -> None:
        resp = client.post("/api/test-turnstile", json={})

        assert resp.status_code == 400
        assert resp.json()["error"] == "No Turnstile token provided"


class TestHealth:
    def test_health_is_never_gated_or_limited(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_requests", 1)

        responses = [client.get("/api/health") for _ in range(3)]

        assert all(r.status_code == 200 for r in responses)
        body = responses[0].json()
        assert body["status"] == "healthy"
        assert body["services"]["textToImage"]["status"] == "healthy"
        assert "error" not in body["services"]["textToImage"]
        assert responses[0].headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    def test_head_health(self, client: TestClient, fake_generation_client: FakeGenerationClient) -> None:
        assert client.head("/api/health").status_code == 200

        fake_generation_client.healthy = False
        assert client.head("/api/health").status_code == 503
