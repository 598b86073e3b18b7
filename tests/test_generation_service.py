"""Tests for GenerationService with a fake upstream client."""

from __future__ import annotations

import base64

import pytest

from app.adapters.generation import UpstreamCallError
from app.core.errors import ErrorCode, UpstreamAppError
from app.schemas.options import SEED_MAX
from app.schemas.requests import (
    GenerateImagePromptRequest,
    ImageToImageRequest,
    OptimizePromptRequest,
    SpeechToTextRequest,
    TextToImageRequest,
    TextToSpeechRequest,
    TextToTextRequest,
)
from app.services.generation_service import (
    RECENT_FAILURE_MESSAGE,
    GenerationService,
    estimate_speech_duration,
    random_seed,
    translate_upstream_error,
)
from conftest import FakeGenerationClient


def test_random_seed_is_in_range() -> None:
    seeds = {random_seed() for _ in range(200)}

    assert all(0 <= seed <= SEED_MAX for seed in seeds)
    assert len(seeds) > 1


@pytest.mark.parametrize(("text", "expected"), [("a" * 8, 1), ("a" * 9, 2), ("a" * 80, 10)])
def test_estimate_speech_duration(text: str, expected: int) -> None:
    assert estimate_speech_duration(text) == expected


class TestTranslateUpstreamError:
    def test_timeout_is_504(self) -> None:
        error = translate_upstream_error(UpstreamCallError("image", "slow", timed_out=True))

        assert error.status_code == 504
        assert error.code == ErrorCode.GATEWAY_TIMEOUT

    def test_unreachable_is_503(self) -> None:
        error = translate_upstream_error(UpstreamCallError("text", "dns", unreachable=True))

        assert error.status_code == 503
        assert error.code == ErrorCode.SERVICE_UNAVAILABLE

    def test_upstream_rate_limit(self) -> None:
        error = translate_upstream_error(UpstreamCallError("image", "429", status_code=429))

        assert error.status_code == 429
        assert error.code == ErrorCode.API_LIMIT_EXCEEDED
        assert error.details == {"upstream_status": 429}

    def test_payment_required(self) -> None:
        error = translate_upstream_error(UpstreamCallError("speech", "402", status_code=402))

        assert error.status_code == 503
        assert "Payment required" in error.message

    def test_other_status_names_the_service(self) -> None:
        error = translate_upstream_error(UpstreamCallError("transcription", "502", status_code=502))

        assert error.status_code == 500
        assert error.message == "Speech recognition service is temporarily unavailable (502)"
        assert error.details == {"upstream_status": 502}


class TestImageGeneration:
    @pytest.mark.asyncio
    async def test_text_to_image_returns_data_url(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        request = TextToImageRequest.model_validate({"prompt": "a cat", "width": 512, "height": 768})

        response = await generation_service.text_to_image(request)

        assert response.image_data == "data:image/jpeg;base64," + base64.b64encode(fake_generation_client.image).decode()
        assert response.seed == 42
        assert (response.width, response.height, response.model) == (512, 768, "flux")
        _, call = fake_generation_client.calls[0]
        assert call["seed"] == 42
        assert call["prompt"] == "a cat"

    @pytest.mark.asyncio
    async def test_supplied_seed_is_used(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        request = TextToImageRequest.model_validate({"prompt": "a cat", "seed": 7})

        response = await generation_service.text_to_image(request)

        assert response.seed == 7
        assert fake_generation_client.calls[0][1]["seed"] == 7

    @pytest.mark.asyncio
    async def test_recent_failure_short_circuits(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        request = TextToImageRequest.model_validate({"prompt": "a cat", "seed": 7})
        fake_generation_client.error = UpstreamCallError("image", "502", status_code=502)

        with pytest.raises(UpstreamAppError):
            await generation_service.text_to_image(request)

        fake_generation_client.error = None
        with pytest.raises(UpstreamAppError) as exc_info:
            await generation_service.text_to_image(request)

        assert exc_info.value.message == RECENT_FAILURE_MESSAGE
        assert len(fake_generation_client.calls) == 1

    @pytest.mark.asyncio
    async def test_different_request_is_not_short_circuited(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        fake_generation_client.error = UpstreamCallError("image", "502", status_code=502)
        with pytest.raises(UpstreamAppError):
            await generation_service.text_to_image(TextToImageRequest.model_validate({"prompt": "a cat"}))

        fake_generation_client.error = None
        response = await generation_service.text_to_image(TextToImageRequest.model_validate({"prompt": "a dog"}))

        assert response.prompt == "a dog"

    @pytest.mark.asyncio
    async def test_image_to_image_uses_reference_model(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        request = ImageToImageRequest.model_validate(
            {"prompt": "make it blue", "imageUrl": "https://example.com/a.png", "strength": 0.3}
        )

        response = await generation_service.image_to_image(request)

        assert response.model == "kontext"
        assert response.strength == 0.3
        call = fake_generation_client.calls[0][1]
        assert call["image_url"] == "https://example.com/a.png"
        assert call["model"] == "kontext"


class TestTextAndSpeech:
    @pytest.mark.asyncio
    async def test_text_to_text_caps_tokens(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        request = TextToTextRequest.model_validate({"text": "summarize me", "maxLength": 4000, "model": "mistral"})

        response = await generation_service.text_to_text(request)

        assert response.original_text == "summarize me"
        assert response.processed_text == "processed text"
        call = fake_generation_client.calls[0][1]
        assert call["max_tokens"] == 1000
        assert call["model"] == "mistral"
        assert call["prompt"].endswith("summarize me")

    @pytest.mark.asyncio
    async def test_text_to_speech(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        request = TextToSpeechRequest.model_validate({"text": "Hello there, friend", "voice": "nova"})

        response = await generation_service.text_to_speech(request)

        assert response.audio_data.startswith("data:audio/mpeg;base64,")
        assert response.voice == "nova"
        assert response.estimated_duration == 3

    @pytest.mark.asyncio
    async def test_speech_to_text_maps_auto_language(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        audio = base64.b64encode(bytes(16_000)).decode()
        request = SpeechToTextRequest.model_validate({"audioData": f"data:audio/mpeg;base64,{audio}"})

        response = await generation_service.speech_to_text(request)

        assert response.text == "hello world"
        assert response.language == "en-US"
        assert response.confidence == 0.95
        assert response.duration == 1
        assert fake_generation_client.calls[0][1] == {"audio": audio, "format": "mp3"}

    @pytest.mark.asyncio
    async def test_speech_failure_is_translated(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        fake_generation_client.error = UpstreamCallError("speech", "timeout", timed_out=True)

        with pytest.raises(UpstreamAppError) as exc_info:
            await generation_service.text_to_speech(TextToSpeechRequest.model_validate({"text": "hi"}))

        assert exc_info.value.status_code == 504


class TestPromptExpansion:
    @pytest.mark.asyncio
    async def test_generate_image_prompt_expands_selection(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        fake_generation_client.text = "  A serene watercolor forest  "
        request = GenerateImagePromptRequest.model_validate({"style": "watercolor", "environment": "forest"})

        response = await generation_service.generate_image_prompt(request)

        assert response.base_prompt == "watercolor, forest"
        assert response.prompt == "A serene watercolor forest"
        assert response.dimensions["style"] == "watercolor"

    @pytest.mark.asyncio
    async def test_expansion_failure_falls_back_to_base_prompt(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        fake_generation_client.text_error = UpstreamCallError("text", "down", unreachable=True)

        response = await generation_service.optimize_prompt(OptimizePromptRequest.model_validate({"prompt": "a cat"}))

        assert response.optimized_prompt == "a cat"


class TestHealth:
    @pytest.mark.asyncio
    async def test_all_healthy(self, generation_service: GenerationService) -> None:
        health = await generation_service.check_health()

        assert health.status == "healthy"
        assert set(health.services) == {"textToImage", "textToText", "textToSpeech", "speechToText"}

    @pytest.mark.asyncio
    async def test_some_failures_are_degraded(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        fake_generation_client.unhealthy_targets = {"https://text.pollinations.ai/tts"}

        health = await generation_service.check_health()

        assert health.status == "degraded"
        assert health.services["textToSpeech"].status == "unhealthy"
        assert health.services["textToSpeech"].error == "down"

    @pytest.mark.asyncio
    async def test_everything_down_is_unhealthy(
        self,
        generation_service: GenerationService,
        fake_generation_client: FakeGenerationClient,
    ) -> None:
        fake_generation_client.healthy = False

        health = await generation_service.check_health()

        assert health.status == "unhealthy"
        assert await generation_service.quick_health() is False
