from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class UpstreamCallError(RuntimeError):
    """Raised by generation clients when an upstream call does not succeed.

    Attributes:
        service: Logical service name (``image``, ``text``, ``speech``, ``transcription``).
        status_code: Upstream HTTP status, when a response was received.
        timed_out: The call exceeded its timeout.
        unreachable: The upstream could not be reached (DNS, connect, reset).
    """

    def __init__(
        self,
        service: str,
        message: str,
        *,
        status_code: int | None = None,
        timed_out: bool = False,
        unreachable: bool = False,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.timed_out = timed_out
        self.unreachable = unreachable


@dataclass(frozen=True)
class ServiceProbe:
    """Outcome of a single upstream liveness probe."""

    healthy: bool
    response_time_ms: int
    error: str | None = None


class AbstractGenerationClient(ABC):
    """Interface for generative API clients (image, text, speech, transcription)."""

    @abstractmethod
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
        """Generate an image from a prompt (optionally from a reference image).

        Returns:
            bytes: Encoded image returned by the upstream.

        Raises:
            UpstreamCallError: If the call fails, times out or is unreachable.
        """
        ...

    @abstractmethod
    async def generate_text(self, prompt: str, *, model: str, max_tokens: int) -> str:
        """Generate text for a prompt.

        Raises:
            UpstreamCallError: If the call fails, times out or is unreachable.
        """
        ...

    @abstractmethod
    async def synthesize_speech(self, text: str, *, voice: str) -> bytes:
        """Synthesize speech audio (MPEG) for the given text."""
        ...

    @abstractmethod
    async def transcribe(self, audio_base64: str, *, audio_format: str) -> str:
        """Transcribe base64-encoded audio to text."""
        ...

    @abstractmethod
    async def probe(self, target: str, *, timeout_seconds: float) -> ServiceProbe:
        """Check whether an upstream service answers. Never raises."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the client."""
        return None
