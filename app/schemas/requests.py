"""Pydantic schemas for gated request bodies.

Each generation endpoint declares its accepted fields once here. Unknown keys
are rejected (``extra="forbid"``), inputs are sanitized during validation, and
rule violations raise ``PydanticCustomError`` whose type is the public error
code so the request validator can translate it without guessing.
"""

from __future__ import annotations

import base64
import binascii
import math
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from app.core.errors import ErrorCode
from app.schemas.options import (
    AUDIO_BYTES_PER_SECOND,
    AUDIO_FORMATS,
    AUDIO_MIME_TYPES,
    CUSTOM_DIMENSION_MAX_LENGTH,
    DEFAULT_IMAGE_MODEL,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_TEXT_MODEL,
    DEFAULT_VOICE,
    IMAGE_MAX_SIZE,
    IMAGE_MIN_SIZE,
    IMAGE_MODELS,
    IMAGE_PROMPT_DIMENSIONS,
    SEED_MAX,
    SPEECH_LANGUAGES,
    SPEECH_VOICES,
    TEXT_TO_TEXT_MODELS,
    TRANSCRIPTION_LANGUAGES,
)
from app.utils.text_sanitizer import strip_angle_brackets, strip_html_tags

MAX_TEXT_TO_IMAGE_PROMPT = 1000
MAX_IMAGE_TO_IMAGE_PROMPT = 500
MAX_OPTIMIZE_PROMPT = 500
MAX_TEXT_TO_TEXT_LENGTH = 5000
MAX_FORWARDED_TOKENS = 1000
MAX_SPEECH_TEXT_LENGTH = 1000
MAX_AUDIO_BYTES = 50 * 1024 * 1024
MAX_AUDIO_DURATION_SECONDS = 300

DIMENSION_FIELDS: tuple[str, ...] = tuple(IMAGE_PROMPT_DIMENSIONS)


def rule_error(code: str, message: str, field: str | None = None) -> PydanticCustomError:
    """Build a validation error carrying a public error code.

    ``field`` is only needed for model-level rules, where pydantic has no
    location to report.
    """

    return PydanticCustomError(code, message, {"field": field} if field else None)


def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _parse_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _sanitize_prompt(value: str, max_length: int) -> str:
    if not value.strip():
        raise rule_error(ErrorCode.VALIDATION_ERROR, "prompt parameter cannot be empty")
    sanitized = strip_angle_brackets(value)
    if not sanitized:
        raise rule_error(ErrorCode.INVALID_PROMPT, "Prompt contains no usable text")
    if len(sanitized) > max_length:
        raise rule_error(
            ErrorCode.PROMPT_TOO_LONG,
            f"Prompt length cannot exceed {max_length} characters",
        )
    return sanitized


def _image_size(value: Any, alias: str) -> int:
    size = _parse_int(value)
    if size is None or not IMAGE_MIN_SIZE <= size <= IMAGE_MAX_SIZE:
        raise rule_error(
            ErrorCode.INVALID_IMAGE_SIZE,
            f"{alias} must be an integer between {IMAGE_MIN_SIZE} and {IMAGE_MAX_SIZE}",
        )
    return size


def _seed_or_none(value: Any) -> int | None:
    # Out-of-range or malformed seeds fall back to a random one.
    seed = _parse_int(value)
    if seed is None or not 0 <= seed <= SEED_MAX:
        return None
    return seed


class GatewayRequest(BaseModel):
    """Base for request bodies: camelCase keys, unknown keys rejected."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel)


class TextToImageRequest(GatewayRequest):
    prompt: str
    width: int = DEFAULT_IMAGE_SIZE
    height: int = DEFAULT_IMAGE_SIZE
    model: str = DEFAULT_IMAGE_MODEL
    seed: int | None = None

    @field_validator("prompt")
    @classmethod
    def _check_prompt(cls, value: str) -> str:
        return _sanitize_prompt(value, MAX_TEXT_TO_IMAGE_PROMPT)

    @field_validator("width", "height", mode="before")
    @classmethod
    def _check_size(cls, value: Any, info: ValidationInfo) -> int:
        return _image_size(value, info.field_name)

    @field_validator("model")
    @classmethod
    def _check_model(cls, value: str) -> str:
        if value not in IMAGE_MODELS:
            raise rule_error(
                ErrorCode.VALIDATION_ERROR,
                f"model must be one of: {', '.join(IMAGE_MODELS)}",
            )
        return value

    @field_validator("seed", mode="before")
    @classmethod
    def _check_seed(cls, value: Any) -> int | None:
        return _seed_or_none(value)


class ImageToImageRequest(GatewayRequest):
    prompt: str
    image_url: str
    width: int | None = None
    height: int | None = None
    seed: int | None = None
    strength: float = 0.5

    @field_validator("prompt")
    @classmethod
    def _check_prompt(cls, value: str) -> str:
        return _sanitize_prompt(value, MAX_IMAGE_TO_IMAGE_PROMPT)

    @field_validator("image_url")
    @classmethod
    def _check_image_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "imageUrl parameter cannot be empty")
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "imageUrl must be a valid URL")
        return value

    @field_validator("width", "height", mode="before")
    @classmethod
    def _check_size(cls, value: Any, info: ValidationInfo) -> int | None:
        if value is None:
            return None
        return _image_size(value, info.field_name)

    @field_validator("seed", mode="before")
    @classmethod
    def _check_seed(cls, value: Any) -> int | None:
        return _seed_or_none(value)

    @field_validator("strength", mode="before")
    @classmethod
    def _check_strength(cls, value: Any) -> float:
        strength = _parse_float(value)
        if strength is None or not 0.0 <= strength <= 1.0:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "Strength must be between 0 and 1")
        return strength


class TextToTextRequest(GatewayRequest):
    text: str
    max_length: int = MAX_FORWARDED_TOKENS
    model: str = DEFAULT_TEXT_MODEL

    @field_validator("text")
    @classmethod
    def _check_text(cls, value: str) -> str:
        if not value.strip():
            raise rule_error(ErrorCode.VALIDATION_ERROR, "text parameter cannot be empty")
        sanitized = strip_angle_brackets(value)
        if len(sanitized) > MAX_TEXT_TO_TEXT_LENGTH:
            raise rule_error(
                ErrorCode.TEXT_TOO_LONG,
                f"Text length cannot exceed {MAX_TEXT_TO_TEXT_LENGTH} characters",
            )
        return sanitized

    @field_validator("max_length", mode="before")
    @classmethod
    def _check_max_length(cls, value: Any) -> int:
        max_length = _parse_int(value)
        if max_length is None or max_length < 1:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "maxLength must be a positive integer")
        return max_length

    @field_validator("model")
    @classmethod
    def _check_model(cls, value: str) -> str:
        if value not in TEXT_TO_TEXT_MODELS:
            raise rule_error(ErrorCode.VALIDATION_ERROR, f"Unsupported text model: {value}")
        return value

    @property
    def max_tokens(self) -> int:
        """Token budget forwarded upstream (never above the service cap)."""
        return min(self.max_length, MAX_FORWARDED_TOKENS)


class TextToSpeechRequest(GatewayRequest):
    text: str
    voice: str | None = None
    language: str = "zh"
    speed: float = 1.0

    @field_validator("text")
    @classmethod
    def _check_text(cls, value: str) -> str:
        sanitized = strip_html_tags(value)
        if not sanitized:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "text parameter cannot be empty")
        if len(sanitized) > MAX_SPEECH_TEXT_LENGTH:
            raise rule_error(
                ErrorCode.TEXT_TOO_LONG,
                f"Text length cannot exceed {MAX_SPEECH_TEXT_LENGTH} characters",
            )
        return sanitized

    @field_validator("voice", mode="before")
    @classmethod
    def _check_voice(cls, value: Any) -> str | None:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if value not in SPEECH_VOICES:
            raise rule_error(
                ErrorCode.VALIDATION_ERROR,
                f"voice must be one of: {', '.join(SPEECH_VOICES)}",
            )
        return value

    @field_validator("language")
    @classmethod
    def _check_language(cls, value: str) -> str:
        if value not in SPEECH_LANGUAGES:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "Unsupported language type")
        return value

    @field_validator("speed", mode="before")
    @classmethod
    def _check_speed(cls, value: Any) -> float:
        speed = _parse_float(value)
        if speed is None or not 0.5 <= speed <= 2.0:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "Speech speed must be between 0.5 and 2.0")
        return speed

    @property
    def selected_voice(self) -> str:
        return self.voice or DEFAULT_VOICE


class SpeechToTextRequest(GatewayRequest):
    audio_data: str
    format: str = "mp3"
    language: str = "auto"

    @field_validator("audio_data")
    @classmethod
    def _check_audio_data(cls, value: str) -> str:
        if not value:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "audioData parameter cannot be empty")
        if not value.startswith("data:audio/"):
            raise rule_error(
                ErrorCode.VALIDATION_ERROR,
                "Incorrect audio data format, please use base64 encoded audio data",
            )

        header, separator, payload = value.partition(",")
        mime_type = header[len("data:"):].split(";", 1)[0]
        if mime_type not in AUDIO_MIME_TYPES:
            raise rule_error(
                ErrorCode.INVALID_AUDIO_FORMAT,
                "Unsupported audio format, please use MP3, WAV, M4A, or WebM format",
            )
        if not separator or not header.endswith(";base64") or "," in payload:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "Incorrect audio data format")
        if not payload:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "Audio data cannot be empty")
        if len(payload) > math.ceil(MAX_AUDIO_BYTES * 4 / 3) + 4:
            raise rule_error(ErrorCode.AUDIO_TOO_LARGE, "Audio file size cannot exceed 50MB")

        try:
            decoded = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise rule_error(ErrorCode.VALIDATION_ERROR, "Audio data is not valid base64") from None
        if len(decoded) > MAX_AUDIO_BYTES:
            raise rule_error(ErrorCode.AUDIO_TOO_LARGE, "Audio file size cannot exceed 50MB")
        return value

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in AUDIO_FORMATS:
            raise rule_error(
                ErrorCode.INVALID_AUDIO_FORMAT,
                "Audio format must be mp3, wav, m4a, or webm",
            )
        return value

    @field_validator("language")
    @classmethod
    def _check_language(cls, value: str) -> str:
        if value not in TRANSCRIPTION_LANGUAGES:
            raise rule_error(ErrorCode.VALIDATION_ERROR, "Unsupported language type")
        return value

    @model_validator(mode="after")
    def _check_duration(self) -> "SpeechToTextRequest":
        if self.estimated_duration_seconds > MAX_AUDIO_DURATION_SECONDS:
            raise rule_error(
                ErrorCode.VALIDATION_ERROR,
                "Audio duration cannot exceed 5 minutes",
                field="audioData",
            )
        return self

    @property
    def audio_base64(self) -> str:
        """Base64 payload without the ``data:`` prefix."""
        return self.audio_data.partition(",")[2]

    @property
    def audio_size_bytes(self) -> int:
        payload = self.audio_base64
        padding = len(payload) - len(payload.rstrip("="))
        return len(payload) * 3 // 4 - padding

    @property
    def estimated_duration_seconds(self) -> int:
        """Clip length estimated from decoded size and a nominal bitrate."""
        bytes_per_second = AUDIO_BYTES_PER_SECOND[self.format]
        return math.floor(self.audio_size_bytes / bytes_per_second + 0.5)


class GenerateImagePromptRequest(GatewayRequest):
    subject: str = ""
    style: str = ""
    quality: str = ""
    composition: str = ""
    lighting: str = ""
    color: str = ""
    mood: str = ""
    environment: str = ""
    custom_subject: str | None = None
    custom_style: str | None = None
    custom_quality: str | None = None
    custom_composition: str | None = None
    custom_lighting: str | None = None
    custom_color: str | None = None
    custom_mood: str | None = None
    custom_environment: str | None = None

    @field_validator(*DIMENSION_FIELDS, mode="before")
    @classmethod
    def _check_dimension(cls, value: Any, info: ValidationInfo) -> str:
        if value is None:
            return ""
        allowed = IMAGE_PROMPT_DIMENSIONS[info.field_name]
        if not isinstance(value, str) or (value and value not in allowed):
            raise rule_error(ErrorCode.VALIDATION_ERROR, f"Invalid {info.field_name} value")
        return value

    @field_validator(*(f"custom_{name}" for name in DIMENSION_FIELDS))
    @classmethod
    def _check_custom(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value and len(value) > CUSTOM_DIMENSION_MAX_LENGTH:
            dimension = info.field_name.removeprefix("custom_")
            raise rule_error(
                ErrorCode.VALIDATION_ERROR,
                f"Custom {dimension} cannot exceed {CUSTOM_DIMENSION_MAX_LENGTH} characters",
            )
        return value

    @model_validator(mode="after")
    def _check_selection(self) -> "GenerateImagePromptRequest":
        if not any(getattr(self, name) for name in DIMENSION_FIELDS):
            raise rule_error(
                ErrorCode.VALIDATION_ERROR,
                "Please select at least one dimension",
                field="body",
            )
        return self

    def resolved_dimensions(self) -> dict[str, str]:
        """Dimension values with ``other`` replaced by the matching custom text."""

        resolved: dict[str, str] = {}
        for name in DIMENSION_FIELDS:
            value = getattr(self, name)
            custom = getattr(self, f"custom_{name}")
            resolved[name] = custom if value == "other" and custom else value
        return resolved

    def base_prompt(self) -> str:
        parts = [v for v in self.resolved_dimensions().values() if v and v != "other"]
        return ", ".join(parts)


class OptimizePromptRequest(GatewayRequest):
    prompt: str

    @field_validator("prompt")
    @classmethod
    def _check_prompt(cls, value: str) -> str:
        return _sanitize_prompt(value, MAX_OPTIMIZE_PROMPT)
