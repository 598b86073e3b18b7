"""Pollinations generative API client adapter."""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import quote

import httpx
import openai
from openai import AsyncOpenAI

from app.adapters.generation.base import AbstractGenerationClient, ServiceProbe, UpstreamCallError

logger = logging.getLogger(__name__)

SPEECH_MODEL = "openai-audio"
TRANSCRIPTION_PROMPT = "Transcribe this audio"


class PollinationsClient(AbstractGenerationClient):
    """Client for the Pollinations image/text/speech APIs.

    Image, text and speech use plain GET endpoints through one shared
    ``httpx.AsyncClient``. Transcription goes through the OpenAI-compatible
    chat completions endpoint with the official SDK. No call is retried.
    """

    def __init__(
        self,
        *,
        image_base_url: str,
        text_base_url: str,
        openai_base_url: str,
        api_token: str | None = None,
        referrer: str | None = None,
        image_timeout_seconds: float = 30.0,
        text_timeout_seconds: float = 30.0,
        speech_timeout_seconds: float = 30.0,
        transcription_timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize HTTP and OpenAI-compatible clients.

        Args:
            image_base_url: Base URL of the image API.
            text_base_url: Base URL of the text and speech API.
            openai_base_url: OpenAI-compatible endpoint used for transcription.
            api_token: Optional API token (query param for speech, bearer for transcription).
            referrer: Referrer sent with speech calls when no token is configured.
            image_timeout_seconds: Timeout for image generation.
            text_timeout_seconds: Timeout for text generation.
            speech_timeout_seconds: Timeout for speech synthesis.
            transcription_timeout_seconds: Timeout for transcription.
            transport: Optional httpx transport shared by both clients (tests).
        """
        self._image_base_url = image_base_url.rstrip("/")
        self._text_base_url = text_base_url.rstrip("/")
        self._api_token = api_token
        self._referrer = referrer
        self._image_timeout = image_timeout_seconds
        self._text_timeout = text_timeout_seconds
        self._speech_timeout = speech_timeout_seconds

        self._http = httpx.AsyncClient(transport=transport, follow_redirects=True)
        self._openai = AsyncOpenAI(
            api_key=api_token or "anonymous",
            base_url=openai_base_url,
            timeout=transcription_timeout_seconds,
            max_retries=0,
            http_client=httpx.AsyncClient(transport=transport, follow_redirects=True) if transport else None,
        )

    async def generate_image(
        self,
        prompt: str,
        *,
        model: str,
        seed: int,
        width: int | None = None,
        height: int | None = None,
        image_url: str | None = None,
        strength: float | None = None,
    ) -> bytes:
        params: dict[str, Any] = {"model": model, "seed": seed}
        if width is not None:
            params["width"] = width
        if height is not None:
            params["height"] = height
        if image_url:
            params["image"] = image_url
        if strength is not None:
            params["strength"] = strength
        params.update({"nologo": "true", "safe": "true", "private": "true"})

        response = await self._get(
            "image",
            f"{self._image_base_url}/prompt/{quote(prompt, safe='')}",
            params=params,
            accept="image/jpeg",
            timeout=self._image_timeout,
        )
        return response.content

    async def generate_text(self, prompt: str, *, model: str, max_tokens: int) -> str:
        response = await self._get(
            "text",
            f"{self._text_base_url}/{quote(prompt, safe='')}",
            params={"model": model, "max_tokens": max_tokens},
            accept="text/plain",
            timeout=self._text_timeout,
        )
        return response.text.strip()

    async def synthesize_speech(self, text: str, *, voice: str) -> bytes:
        params: dict[str, Any] = {"model": SPEECH_MODEL, "voice": voice}
        if self._api_token:
            params["token"] = self._api_token
        elif self._referrer:
            params["referrer"] = self._referrer

        response = await self._get(
            "speech",
            f"{self._text_base_url}/{quote(text, safe='')}",
            params=params,
            accept="audio/mpeg",
            timeout=self._speech_timeout,
        )
        return response.content

    async def transcribe(self, audio_base64: str, *, audio_format: str) -> str:
        messages: list[dict[str, Any]] = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": TRANSCRIPTION_PROMPT},
                    {
                        "type": "input_audio",
                        "input_audio": {"data": audio_base64, "format": audio_format},
                    },
                ],
            }
        ]

        try:
            completion = await self._openai.chat.completions.create(
                model=SPEECH_MODEL,
                messages=messages,  # type: ignore[arg-type]
            )
        except openai.APITimeoutError as exc:
            raise UpstreamCallError("transcription", "Transcription timed out", timed_out=True) from exc
        except openai.APIConnectionError as exc:
            raise UpstreamCallError(
                "transcription", "Transcription service unreachable", unreachable=True
            ) from exc
        except openai.APIStatusError as exc:
            raise UpstreamCallError(
                "transcription",
                f"Transcription API error: {exc.status_code}",
                status_code=exc.status_code,
            ) from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise UpstreamCallError("transcription", "Transcription API returned empty response")
        return content.strip()

    async def probe(self, target: str, *, timeout_seconds: float) -> ServiceProbe:
        start = time.perf_counter()
        try:
            response = await self._http.head(target, timeout=timeout_seconds)
        except httpx.HTTPError as exc:
            return ServiceProbe(
                healthy=False,
                response_time_ms=_elapsed_ms(start),
                error=str(exc) or type(exc).__name__,
            )
        return ServiceProbe(healthy=response.is_success, response_time_ms=_elapsed_ms(start))

    async def aclose(self) -> None:
        await self._http.aclose()
        await self._openai.close()

    async def _get(
        self,
        service: str,
        url: str,
        *,
        params: dict[str, Any],
        accept: str,
        timeout: float,
    ) -> httpx.Response:
        start = time.perf_counter()
        try:
            response = await self._http.get(
                url,
                params=params,
                headers={"Accept": accept},
                timeout=timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamCallError(service, f"{service} request timed out", timed_out=True) from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise UpstreamCallError(
                service,
                f"{service} API error: {status_code}",
                status_code=status_code,
            ) from exc
        except httpx.TransportError as exc:
            raise UpstreamCallError(service, f"{service} service unreachable", unreachable=True) from exc

        logger.debug(
            "upstream.response",
            extra={
                "service": service,
                "status_code": response.status_code,
                "bytes": len(response.content),
                "duration_ms": _elapsed_ms(start),
            },
        )
        return response


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
