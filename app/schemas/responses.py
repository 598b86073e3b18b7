"""Pydantic schemas for API responses.

Fields are declared in snake_case and serialized in camelCase (FastAPI
serializes response models by alias).
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GatewayResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextToImageResponse(GatewayResponse):
    success: bool = True
    image_data: str = Field(..., description="Generated image as a base64 data URL.")
    prompt: str = Field(..., description="Sanitized prompt that was sent upstream.")
    width: int
    height: int
    model: str
    seed: int = Field(..., description="Seed used for generation (random when not supplied).")


class ImageToImageResponse(GatewayResponse):
    success: bool = True
    image_data: str = Field(..., description="Generated image as a base64 data URL.")
    prompt: str
    model: str
    seed: int
    strength: float


class TextToTextResponse(GatewayResponse):
    success: bool = True
    original_text: str
    processed_text: str
    model: str


class TextToSpeechResponse(GatewayResponse):
    success: bool = True
    audio_data: str = Field(..., description="Synthesized speech as a base64 MPEG data URL.")
    text: str
    voice: str
    language: str
    speed: float
    estimated_duration: int = Field(..., description="Rough duration in seconds (8 characters per second).")


class SpeechToTextResponse(GatewayResponse):
    success: bool = True
    text: str
    confidence: float = Field(
        0.95,
        description="Fixed confidence; the upstream does not report one.",
    )
    language: str
    format: str
    duration: int = Field(..., description="Estimated clip duration in seconds.")


class GenerateImagePromptResponse(GatewayResponse):
    success: bool = True
    prompt: str = Field(..., description="Expanded prompt, or the base prompt when expansion fails.")
    base_prompt: str = Field(..., description="Selected dimensions joined by commas.")
    dimensions: dict[str, str]


class OptimizePromptResponse(GatewayResponse):
    success: bool = True
    optimized_prompt: str


class TurnstileTestResponse(GatewayResponse):
    """Diagnostic view of a single verification attempt."""

    success: bool
    verification: dict[str, Any]
    message: str
    client_ip: str
    timestamp: str


class ServiceHealth(GatewayResponse):
    status: Literal["healthy", "unhealthy"]
    response_time: int = Field(..., description="Probe latency in milliseconds.")
    error: str | None = None


class HealthResponse(GatewayResponse):
    """Aggregate upstream health.

    ``degraded`` means one or two upstream services failed their probe;
    ``unhealthy`` means more than two did.
    """

    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: str
    uptime: int = Field(..., description="Process uptime in seconds.")
    services: dict[str, ServiceHealth]


class ErrorResponse(GatewayResponse):
    """Error envelope returned by every failing request."""

    error: str = Field(..., description="Short error title.")
    status: int
    message: str
    code: str = Field(..., description="Stable machine-readable error code.")
    field: str | None = None
    details: dict[str, Any] | None = Field(
        None,
        description="Debug context; omitted in production.",
    )
    timestamp: str
    path: str
    retry_after: int | None = Field(None, description="Seconds until the rate-limit window resets.")
