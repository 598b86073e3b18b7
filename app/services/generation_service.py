"""Generation service orchestrating upstream calls for every gated route.

Routes hand this service an already validated and sanitized request model.
The service:
- Builds upstream calls (prompts, seeds, voices, token budgets)
- Short-circuits requests that failed recently (error cache)
- Encodes binary results as base64 data URLs
- Translates upstream failures into the application error taxonomy
"""

from __future__ import annotations

import asyncio
import base64
import logging
import math
import secrets
import time
from typing import Awaitable, Callable, TypeVar

from app.adapters.generation import AbstractGenerationClient, UpstreamCallError, create_generation_client
from app.core.config import settings
from app.core.errors import (
    AppError,
    api_limit_exceeded,
    gateway_timeout,
    internal,
    service_unavailable,
)
from app.core.logging import utc_now_iso
from app.schemas.options import IMAGE_TO_IMAGE_MODEL, SEED_MAX
from app.schemas.requests import (
    GenerateImagePromptRequest,
    ImageToImageRequest,
    OptimizePromptRequest,
    SpeechToTextRequest,
    TextToImageRequest,
    TextToSpeechRequest,
    TextToTextRequest,
)
from app.schemas.responses import (
    GenerateImagePromptResponse,
    HealthResponse,
    ImageToImageResponse,
    OptimizePromptResponse,
    ServiceHealth,
    SpeechToTextResponse,
    TextToImageResponse,
    TextToSpeechResponse,
    TextToTextResponse,
)
from app.utils.simple_cache import SimpleTTLCache, build_cache_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEXT_SYSTEM_PROMPT = "Please process the following text:"
OPTIMIZE_PROMPT_INSTRUCTION = (
    "Please create a detailed and creative image generation prompt that is suitable for "
    "artificial intelligence image generation, with no more than 500 characters, based on "
    "the following user input:"
)
IMAGE_PROMPT_INSTRUCTION = (
    "Please create a detailed and creative image generation prompt that is suitable for "
    "artificial intelligence image generation, with no more than 1000 characters, based on "
    "the following elements:"
)
PROMPT_EXPANSION_MODEL = "openai"
PROMPT_EXPANSION_MAX_TOKENS = 100

SPEECH_CHARS_PER_SECOND = 8
TRANSCRIPTION_CONFIDENCE = 0.95
AUTO_LANGUAGE_FALLBACK = "en-US"

RECENT_FAILURE_MESSAGE = "This request failed recently, please try again later"

SERVICE_LABELS: dict[str, str] = {
    "image": "Image generation service",
    "text": "Text generation service",
    "speech": "Speech synthesis service",
    "transcription": "Speech recognition service",
}

_STARTED_AT = time.monotonic()


def random_seed() -> int:
    """Uniform random seed over ``[0, 999999999]``."""
    return secrets.randbelow(SEED_MAX + 1)


def to_data_url(mime_type: str, content: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


def estimate_speech_duration(text: str) -> int:
    """Rough spoken duration in seconds (about 8 characters per second)."""
    return math.ceil(len(text) / SPEECH_CHARS_PER_SECOND)


def translate_upstream_error(exc: UpstreamCallError) -> AppError:
    """Map an upstream failure to the public error taxonomy.

    The upstream status only appears in ``details`` (hidden in production).

    Args:
        exc: Failure raised by the generation client.

    Returns:
        AppError to raise to the client.
    """

    label = SERVICE_LABELS.get(exc.service, "Upstream service")

    if exc.timed_out:
        return gateway_timeout(f"{label} did not respond in time", details={"reason": "timeout"})
    if exc.unreachable:
        return service_unavailable(f"{label} is unreachable", details={"reason": "connection_error"})

    status = exc.status_code
    if status == 429:
        error = api_limit_exceeded("upstream rate limit reached, please try again later")
        error.details = {"upstream_status": status}
        return error
    if status == 402:
        return service_unavailable(
            "Payment required - Please check your API usage limits or authentication",
            details={"upstream_status": status},
        )
    if status is not None:
        return internal(
            f"{label} is temporarily unavailable ({status})",
            details={"upstream_status": status},
        )
    return internal(f"{label} failed", details={"reason": str(exc)})


class GenerationService:
    """Service turning validated requests into upstream generation calls.

    Attributes:
        client: Upstream generation client.
        error_cache: Fingerprints of recently failed image requests.
    """

    def __init__(
        self,
        client: AbstractGenerationClient,
        error_cache: SimpleTTLCache[str],
        *,
        seed_factory: Callable[[], int] = random_seed,
    ) -> None:
        self.client = client
        self.error_cache = error_cache
        self._seed_factory = seed_factory

    async def text_to_image(self, request: TextToImageRequest) -> TextToImageResponse:
        cache_key = build_cache_key(
            "text-to-image",
            request.prompt,
            request.width,
            request.height,
            request.model,
            request.seed if request.seed is not None else "random",
        )
        self._raise_if_recently_failed(cache_key)

        seed = request.seed if request.seed is not None else self._seed_factory()
        content = await self._call(
            lambda: self.client.generate_image(
                request.prompt,
                model=request.model,
                seed=seed,
                width=request.width,
                height=request.height,
            ),
            cache_key=cache_key,
        )
        return TextToImageResponse(
            image_data=to_data_url("image/jpeg", content),
            prompt=request.prompt,
            width=request.width,
            height=request.height,
            model=request.model,
            seed=seed,
        )

    async def image_to_image(self, request: ImageToImageRequest) -> ImageToImageResponse:
        cache_key = build_cache_key(
            "image-to-image",
            request.prompt,
            request.image_url,
            request.seed if request.seed is not None else "random",
        )
        self._raise_if_recently_failed(cache_key)

        seed = request.seed if request.seed is not None else self._seed_factory()
        content = await self._call(
            lambda: self.client.generate_image(
                request.prompt,
                model=IMAGE_TO_IMAGE_MODEL,
                seed=seed,
                width=request.width,
                height=request.height,
                image_url=request.image_url,
                strength=request.strength,
            ),
            cache_key=cache_key,
        )
        return ImageToImageResponse(
            image_data=to_data_url("image/jpeg", content),
            prompt=request.prompt,
            model=IMAGE_TO_IMAGE_MODEL,
            seed=seed,
            strength=request.strength,
        )

    async def text_to_text(self, request: TextToTextRequest) -> TextToTextResponse:
        processed = await self._call(
            lambda: self.client.generate_text(
                f"{TEXT_SYSTEM_PROMPT}\n\n{request.text}",
                model=request.model,
                max_tokens=request.max_tokens,
            )
        )
        return TextToTextResponse(
            original_text=request.text,
            processed_text=processed,
            model=request.model,
        )

    async def text_to_speech(self, request: TextToSpeechRequest) -> TextToSpeechResponse:
        voice = request.selected_voice
        audio = await self._call(lambda: self.client.synthesize_speech(request.text, voice=voice))
        return TextToSpeechResponse(
            audio_data=to_data_url("audio/mpeg", audio),
            text=request.text,
            voice=voice,
            language=request.language,
            speed=request.speed,
            estimated_duration=estimate_speech_duration(request.text),
        )

    async def speech_to_text(self, request: SpeechToTextRequest) -> SpeechToTextResponse:
        text = await self._call(
            lambda: self.client.transcribe(request.audio_base64, audio_format=request.format)
        )
        language = AUTO_LANGUAGE_FALLBACK if request.language == "auto" else request.language
        return SpeechToTextResponse(
            text=text,
            confidence=TRANSCRIPTION_CONFIDENCE,
            language=language,
            format=request.format,
            duration=request.estimated_duration_seconds,
        )

    async def generate_image_prompt(self, request: GenerateImagePromptRequest) -> GenerateImagePromptResponse:
        base_prompt = request.base_prompt()
        prompt = await self._expand_prompt(IMAGE_PROMPT_INSTRUCTION, base_prompt)
        return GenerateImagePromptResponse(
            prompt=prompt,
            base_prompt=base_prompt,
            dimensions=request.resolved_dimensions(),
        )

    async def optimize_prompt(self, request: OptimizePromptRequest) -> OptimizePromptResponse:
        optimized = await self._expand_prompt(OPTIMIZE_PROMPT_INSTRUCTION, request.prompt)
        return OptimizePromptResponse(optimized_prompt=optimized)

    async def check_health(self) -> HealthResponse:
        """Probe every upstream service concurrently."""

        upstream = settings.upstream
        targets = {
            "textToImage": f"{upstream.image_base_url.rstrip('/')}/",
            "textToText": f"{upstream.text_base_url.rstrip('/')}/",
            "textToSpeech": f"{upstream.text_base_url.rstrip('/')}/tts",
            "speechToText": upstream.openai_base_url,
        }
        probes = await asyncio.gather(
            *(
                self.client.probe(url, timeout_seconds=upstream.health_timeout_seconds)
                for url in targets.values()
            )
        )
        services = {
            name: ServiceHealth(
                status="healthy" if probe.healthy else "unhealthy",
                response_time=probe.response_time_ms,
                error=probe.error,
            )
            for name, probe in zip(targets, probes)
        }

        unhealthy = sum(1 for s in services.values() if s.status == "unhealthy")
        if unhealthy == 0:
            status = "healthy"
        elif unhealthy <= 2:
            status = "degraded"
        else:
            status = "unhealthy"

        return HealthResponse(
            status=status,
            timestamp=utc_now_iso(),
            uptime=int(time.monotonic() - _STARTED_AT),
            services=services,
        )

    async def quick_health(self) -> bool:
        """Single fast probe of the image API (load-balancer check)."""

        upstream = settings.upstream
        probe = await self.client.probe(
            f"{upstream.image_base_url.rstrip('/')}/",
            timeout_seconds=upstream.quick_health_timeout_seconds,
        )
        return probe.healthy

    def _raise_if_recently_failed(self, cache_key: str) -> None:
        if self.error_cache.get(cache_key) is not None:
            logger.info("generation.cached_failure", extra={"cache_key": cache_key[:16]})
            raise internal(RECENT_FAILURE_MESSAGE)

    async def _call(self, operation: Callable[[], Awaitable[T]], *, cache_key: str | None = None) -> T:
        start = time.perf_counter()
        try:
            result = await operation()
        except UpstreamCallError as exc:
            logger.warning(
                "upstream.call_failed",
                extra={
                    "service": exc.service,
                    "upstream_status": exc.status_code,
                    "timed_out": exc.timed_out,
                    "unreachable": exc.unreachable,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            if cache_key is not None:
                self.error_cache.set(cache_key, str(exc))
            raise translate_upstream_error(exc) from exc
        return result

    async def _expand_prompt(self, instruction: str, base_prompt: str) -> str:
        # Expansion is best effort: any upstream failure keeps the base prompt.
        try:
            expanded = await self.client.generate_text(
                f"{instruction}\n\n{base_prompt}",
                model=PROMPT_EXPANSION_MODEL,
                max_tokens=PROMPT_EXPANSION_MAX_TOKENS,
            )
        except UpstreamCallError as exc:
            logger.warning(
                "prompt_expansion.fallback",
                extra={"service": exc.service, "upstream_status": exc.status_code},
            )
            return base_prompt
        return expanded.strip() or base_prompt


_error_cache: SimpleTTLCache[str] | None = None
_service: GenerationService | None = None


def get_error_cache() -> SimpleTTLCache[str]:
    """Process-wide cache of recently failed requests."""

    global _error_cache
    if _error_cache is None:
        _error_cache = SimpleTTLCache(
            ttl_seconds=settings.app.error_cache_ttl_seconds,
            max_entries=settings.app.error_cache_max_entries,
        )
    return _error_cache


def get_generation_service() -> GenerationService:
    """FastAPI dependency returning the shared generation service."""

    global _service
    if _service is None:
        _service = GenerationService(client=create_generation_client(), error_cache=get_error_cache())
    return _service


async def close_generation_service() -> None:
    global _service
    if _service is not None:
        await _service.client.aclose()
    _service = None
