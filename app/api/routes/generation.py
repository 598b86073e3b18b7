from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.core.rate_limit import enforce_rate_limit
from app.core.turnstile import enforce_turnstile
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
    ErrorResponse,
    GenerateImagePromptResponse,
    ImageToImageResponse,
    OptimizePromptResponse,
    SpeechToTextResponse,
    TextToImageResponse,
    TextToSpeechResponse,
    TextToTextResponse,
)
from app.services.generation_service import GenerationService, get_generation_service
from app.services.request_validator import read_json_body, validate_payload

router = APIRouter(prefix="/api", tags=["Generation"])

# Gate order matters: rate limit first, then human verification.
GATED = [Depends(enforce_rate_limit), Depends(enforce_turnstile)]
RATE_LIMITED = [Depends(enforce_rate_limit)]

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid body, failed validation or missing verification token."},
    429: {"model": ErrorResponse, "description": "Per-IP rate limit exceeded."},
    500: {"model": ErrorResponse, "description": "Upstream failure or recently failed request."},
    503: {"model": ErrorResponse, "description": "Upstream unreachable or out of quota."},
    504: {"model": ErrorResponse, "description": "Upstream timed out."},
}
GATED_RESPONSES: dict[int | str, dict[str, Any]] = {
    **ERROR_RESPONSES,
    403: {"model": ErrorResponse, "description": "Human verification failed."},
}

JsonBody = Annotated[dict[str, Any], Depends(read_json_body)]
Service = Annotated[GenerationService, Depends(get_generation_service)]


def json_body_docs(model: type[BaseModel], *, gated: bool = True) -> dict[str, Any]:
    """OpenAPI ``requestBody`` for routes that read the raw JSON body."""

    return {
        "x-turnstile-required": gated,
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema(by_alias=True)}},
        },
    }


@router.post(
    "/text-to-image",
    response_model=TextToImageResponse,
    dependencies=GATED,
    responses=GATED_RESPONSES,
    openapi_extra=json_body_docs(TextToImageRequest),
)
async def text_to_image(body: JsonBody, service: Service) -> TextToImageResponse:
    """Generate an image from a text prompt.

    A random seed is used unless a valid one is supplied. Requests that
    failed upstream in the last minute are rejected without a new call.
    """
    return await service.text_to_image(validate_payload(TextToImageRequest, body))


@router.post(
    "/image-to-image",
    response_model=ImageToImageResponse,
    dependencies=GATED,
    responses=GATED_RESPONSES,
    openapi_extra=json_body_docs(ImageToImageRequest),
)
async def image_to_image(body: JsonBody, service: Service) -> ImageToImageResponse:
    """Generate an image from a prompt and a reference image URL."""
    return await service.image_to_image(validate_payload(ImageToImageRequest, body))


@router.post(
    "/text-to-text",
    response_model=TextToTextResponse,
    dependencies=GATED,
    responses=GATED_RESPONSES,
    openapi_extra=json_body_docs(TextToTextRequest),
)
async def text_to_text(body: JsonBody, service: Service) -> TextToTextResponse:
    return await service.text_to_text(validate_payload(TextToTextRequest, body))


@router.post(
    "/text-to-speech",
    response_model=TextToSpeechResponse,
    dependencies=GATED,
    responses=GATED_RESPONSES,
    openapi_extra=json_body_docs(TextToSpeechRequest),
)
async def text_to_speech(body: JsonBody, service: Service) -> TextToSpeechResponse:
    """Synthesize speech; HTML tags are stripped from the text first."""
    return await service.text_to_speech(validate_payload(TextToSpeechRequest, body))


@router.post(
    "/speech-to-text",
    response_model=SpeechToTextResponse,
    dependencies=GATED,
    responses=GATED_RESPONSES,
    openapi_extra=json_body_docs(SpeechToTextRequest),
)
async def speech_to_text(body: JsonBody, service: Service) -> SpeechToTextResponse:
    """Transcribe a base64 audio data URL (at most 50MB and 5 minutes)."""
    return await service.speech_to_text(validate_payload(SpeechToTextRequest, body))


@router.post(
    "/generate-image-prompt",
    response_model=GenerateImagePromptResponse,
    dependencies=GATED,
    responses=GATED_RESPONSES,
    openapi_extra=json_body_docs(GenerateImagePromptRequest),
)
async def generate_image_prompt(body: JsonBody, service: Service) -> GenerateImagePromptResponse:
    """Build an image prompt from selected dimensions and expand it upstream.

    Falls back to the comma-joined selection when expansion fails.
    """
    return await service.generate_image_prompt(validate_payload(GenerateImagePromptRequest, body))


@router.post(
    "/text-to-image/optimize-prompt",
    response_model=OptimizePromptResponse,
    dependencies=RATE_LIMITED,
    responses=ERROR_RESPONSES,
    openapi_extra=json_body_docs(OptimizePromptRequest, gated=False),
)
async def optimize_prompt(body: JsonBody, service: Service) -> OptimizePromptResponse:
    return await service.optimize_prompt(validate_payload(OptimizePromptRequest, body))
