"""Tests for the Turnstile verification gate.

Covers the pure helpers (message table, retryable classification, token
extraction, skip rules) and the dependency behavior through a small app.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.adapters.turnstile import VerificationOutcome
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.turnstile import (
    DEFAULT_ERROR_MESSAGE,
    enforce_turnstile,
    extract_token,
    get_error_message,
    get_turnstile_verifier,
    is_retryable_error,
    should_skip_verification,
)
from conftest import FakeVerifier


class TestErrorMessages:
    @pytest.mark.parametrize(
        ("codes", "expected"),
        [
            (["missing-input-response"], "Please complete the verification challenge"),
            (["invalid-input-response"], "Verification has expired, please try again"),
            (["timeout-or-duplicate"], "Verification timeout or duplicate submission"),
            (["internal-error"], "Verification service temporarily unavailable"),
            (["invalid-input-secret"], "Service configuration error"),
            (["missing-secret-key"], "Verification service not configured"),
        ],
    )
    def test_known_codes_have_specific_messages(self, codes: list[str], expected: str) -> None:
        assert get_error_message(codes) == expected

    def test_first_code_decides(self) -> None:
        assert get_error_message(["bad-request", "internal-error"]) == "Invalid request format"

    @pytest.mark.parametrize("codes", [[], None, ["something-new"]])
    def test_unknown_or_empty_codes_fall_back(self, codes: list[str] | None) -> None:
        assert get_error_message(codes) == DEFAULT_ERROR_MESSAGE


class TestRetryable:
    @pytest.mark.parametrize(
        ("codes", "expected"),
        [
            (["timeout-or-duplicate"], True),
            (["internal-error"], True),
            (["invalid-input-response"], True),
            (["bad-request", "internal-error"], True),
            (["invalid-input-secret"], False),
            (["missing-secret-key"], False),
            ([], False),
            (None, True),
        ],
    )
    def test_classification(self, codes: list[str] | None, expected: bool) -> None:
        assert is_retryable_error(codes) is expected


class TestExtractToken:
    def test_prefers_turnstile_token(self) -> None:
        assert extract_token({"turnstileToken": "a", "cf-turnstile-response": "b"}) == "a"

    def test_accepts_widget_field_name(self) -> None:
        assert extract_token({"cf-turnstile-response": "b"}) == "b"

    @pytest.mark.parametrize("body", [{}, {"turnstileToken": ""}, {"turnstileToken": 123}])
    def test_missing_or_invalid_token(self, body: dict) -> None:
        assert extract_token(body) is None


class TestShouldSkip:
    @patch("app.core.turnstile.settings")
    def test_health_is_never_gated(self, mock_settings) -> None:
        mock_settings.turnstile.skip_verification = False
        mock_settings.turnstile.is_configured = True

        assert should_skip_verification("/api/health") is True

    @patch("app.core.turnstile.settings")
    def test_explicit_skip(self, mock_settings) -> None:
        mock_settings.turnstile.skip_verification = True

        assert should_skip_verification("/api/text-to-image") is True

    @patch("app.core.turnstile.settings")
    def test_missing_keys_do_not_skip(self, mock_settings) -> None:
        mock_settings.turnstile.skip_verification = False
        mock_settings.turnstile.is_configured = False

        assert should_skip_verification("/api/text-to-image") is False

    @patch("app.core.turnstile.settings")
    def test_configured_keys_do_not_skip(self, mock_settings) -> None:
        mock_settings.turnstile.skip_verification = False
        mock_settings.turnstile.is_configured = True

        assert should_skip_verification("/api/text-to-image") is False


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def gated_client(verifier: FakeVerifier) -> TestClient:
    app = FastAPI()
    setup_exception_handlers(app)
    app.dependency_overrides[get_turnstile_verifier] = lambda: verifier

    @app.post("/gated", dependencies=[Depends(enforce_turnstile)])
    async def gated() -> dict[str, bool]:
        return {"ok": True}

    return TestClient(app)


class TestEnforceTurnstile:
    def test_missing_token_is_400_without_verification(self, gated_client: TestClient, verifier: FakeVerifier) -> None:
        resp = gated_client.post("/gated", json={"prompt": "cat"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "TURNSTILE_MISSING"
        assert body["error"] == "Verification required"
        assert verifier.calls == []

    def test_valid_token_passes(self, gated_client: TestClient, verifier: FakeVerifier) -> None:
        resp = gated_client.post(
            "/gated",
            json={"turnstileToken": "tok"},
            headers={"cf-connecting-ip": "198.51.100.4"},
        )

        assert resp.status_code == 200
        assert verifier.calls == [("tok", "198.51.100.4")]

    def test_widget_field_name_is_accepted(self, gated_client: TestClient, verifier: FakeVerifier) -> None:
        resp = gated_client.post("/gated", json={"cf-turnstile-response": "tok"})

        assert resp.status_code == 200
        assert verifier.calls[0][0] == "tok"

    def test_rejected_token_is_403_with_mapped_message(self, gated_client: TestClient, verifier: FakeVerifier) -> None:
        verifier.outcome = VerificationOutcome.failed("timeout-or-duplicate")

        resp = gated_client.post("/gated", json={"turnstileToken": "reused"})

        assert resp.status_code == 403
        body = resp.json()
        assert body["code"] == "TURNSTILE_FAILED"
        assert body["error"] == "Verification failed"
        assert body["message"] == "Verification timeout or duplicate submission"
        assert body["details"] == {"error_codes": ["timeout-or-duplicate"], "retryable": True}

    def test_unrecognized_code_uses_generic_message(self, gated_client: TestClient, verifier: FakeVerifier) -> None:
        verifier.outcome = VerificationOutcome.failed("brand-new-code")

        resp = gated_client.post("/gated", json={"turnstileToken": "tok"})

        assert resp.status_code == 403
        assert resp.json()["message"] == DEFAULT_ERROR_MESSAGE

    def test_missing_keys_fail_closed(
        self,
        gated_client: TestClient,
        verifier: FakeVerifier,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings.turnstile, "site_key", None)

        resp = gated_client.post("/gated", json={"turnstileToken": "tok"})

        assert resp.status_code == 403
        assert resp.json()["message"] == "Verification service not configured"
        assert verifier.calls == []

    def test_skip_flag_disables_gate(
        self,
        gated_client: TestClient,
        verifier: FakeVerifier,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings.turnstile, "skip_verification", True)

        resp = gated_client.post("/gated", json={})

        assert resp.status_code == 200
        assert verifier.calls == []

    def test_non_object_body_is_rejected(self, gated_client: TestClient) -> None:
        resp = gated_client.post("/gated", content=b"[1, 2, 3]", headers={"content-type": "application/json"})

        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid request body format"


def test_verifier_singleton_is_reused() -> None:
    assert get_turnstile_verifier() is get_turnstile_verifier()
