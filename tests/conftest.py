"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets APP_ENV=testing (and the Turnstile keys) before any app import so
the settings object is built from the test environment.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("TURNSTILE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("TURNSTILE_SITE_KEY", "test-site-key")
os.environ.setdefault("TURNSTILE_SKIP_VERIFICATION", "false")
os.environ.setdefault("APP_RATE_LIMIT_REQUESTS", "20")
os.environ.setdefault("APP_RATE_LIMIT_WINDOW_SECONDS", "60")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import Iterator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.adapters.generation import AbstractGenerationClient, ServiceProbe, UpstreamCallError  # noqa: E402
from app.adapters.turnstile import AbstractVerifier, VerificationOutcome  # noqa: E402
from app.core.rate_limit import reset_rate_limiter  # noqa: E402
from app.core.turnstile import get_turnstile_verifier  # noqa: E402
from app.main import app  # noqa: E402
from app.services.generation_service import GenerationService, get_generation_service  # noqa: E402
from app.utils.simple_cache import SimpleTTLCache  # noqa: E402

VALID_TOKEN = "XXXX.DUMMY.TOKEN.XXXX"


class FakeVerifier(AbstractVerifier):
    """Verifier returning a fixed outcome and recording every call."""

    def __init__(self, outcome: VerificationOutcome | None = None) -> None:
        self.outcome = outcome or VerificationOutcome(success=True, hostname="localhost")
        self.calls: list[tuple[str | None, str | None]] = []

    async def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        if not token:
            return VerificationOutcome.failed("missing-input-response")
        return self.outcome


class FakeGenerationClient(AbstractGenerationClient):
    """In-memory generation client.

    Set ``error`` to make every generation call raise it; ``probes`` maps a
    URL suffix to the probe result returned for it.
    """

    def __init__(self) -> None:
        self.image = b"\xff\xd8fake-jpeg"
        self.text = "processed text"
        self.audio = b"ID3fake-mp3"
        self.transcript = "hello world"
        self.error: UpstreamCallError | None = None
        self.text_error: UpstreamCallError | None = None
        self.healthy = True
        self.unhealthy_targets: set[str] = set()
        self.calls: list[tuple[str, dict]] = []

    async def generate_image(self, prompt, *, model, seed, width=None, height=None, image_url=None, strength=None):
        self.calls.append(
            (
                "image",
                {
                    "prompt": prompt,
                    "model": model,
                    "seed": seed,
                    "width": width,
                    "height": height,
                    "image_url": image_url,
                    "strength": strength,
                },
            )
        )
        if self.error:
            raise self.error
        return self.image

    async def generate_text(self, prompt, *, model, max_tokens):
        self.calls.append(("text", {"prompt": prompt, "model": model, "max_tokens": max_tokens}))
        if self.text_error or self.error:
            raise self.text_error or self.error
        return self.text

    async def synthesize_speech(self, text, *, voice):
        self.calls.append(("speech", {"text": text, "voice": voice}))
        if self.error:
            raise self.error
        return self.audio

    async def transcribe(self, audio_base64, *, audio_format):
        self.calls.append(("transcription", {"audio": audio_base64, "format": audio_format}))
        if self.error:
            raise self.error
        return self.transcript

    async def probe(self, target, *, timeout_seconds):
        self.calls.append(("probe", {"target": target, "timeout": timeout_seconds}))
        healthy = self.healthy and target not in self.unhealthy_targets
        return ServiceProbe(healthy=healthy, response_time_ms=12, error=None if healthy else "down")


@pytest.fixture(autouse=True)
def _reset_rate_limiter() -> Iterator[None]:
    """Every test starts with empty rate-limit counters."""
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.fixture
def fake_verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def fake_generation_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def generation_service(fake_generation_client: FakeGenerationClient) -> GenerationService:
    return GenerationService(
        client=fake_generation_client,
        error_cache=SimpleTTLCache(ttl_seconds=60, max_entries=100),
        seed_factory=lambda: 42,
    )


@pytest.fixture
def client(fake_verifier: FakeVerifier, generation_service: GenerationService) -> Iterator[TestClient]:
    """Test client with the verifier and upstream client swapped for fakes."""
    app.dependency_overrides[get_turnstile_verifier] = lambda: fake_verifier
    app.dependency_overrides[get_generation_service] = lambda: generation_service
    yield TestClient(app)
    app.dependency_overrides.clear()
