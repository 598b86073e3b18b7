"""Allowed values for request fields.

Kept in one place so schemas, services and the OpenAPI docs agree.
"""

from __future__ import annotations

IMAGE_MODELS: tuple[str, ...] = ("flux", "kontext", "turbo")
DEFAULT_IMAGE_MODEL = "flux"
IMAGE_TO_IMAGE_MODEL = "kontext"

IMAGE_MIN_SIZE = 64
IMAGE_MAX_SIZE = 2048
DEFAULT_IMAGE_SIZE = 1024

SEED_MAX = 999_999_999

TEXT_TO_TEXT_MODELS: tuple[str, ...] = (
    "gpt-5-nano",
    "llama-fast-roblox",
    "llama-roblox",
    "llamascout",
    "mistral",
    "mistral-nemo-roblox",
    "mistral-roblox",
    "nova-fast",
    "openai",
    "openai-fast",
    "openai-roblox",
    "midijourney",
    "mirexa",
)
DEFAULT_TEXT_MODEL = "openai"

SPEECH_VOICES: tuple[str, ...] = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")
DEFAULT_VOICE = "alloy"
SPEECH_LANGUAGES: tuple[str, ...] = ("zh", "en", "ja", "ko")

AUDIO_FORMATS: tuple[str, ...] = ("mp3", "wav", "m4a", "webm")
AUDIO_MIME_TYPES: tuple[str, ...] = (
    "audio/mp3",
    "audio/mpeg",
    "audio/wav",
    "audio/x-wav",
    "audio/m4a",
    "audio/webm",
)
TRANSCRIPTION_LANGUAGES: tuple[str, ...] = ("zh-CN", "en-US", "ja-JP", "ko-KR", "auto")

# Bytes per second used to estimate clip length from its decoded size.
AUDIO_BYTES_PER_SECOND: dict[str, float] = {
    "mp3": 128_000 / 8,
    "wav": 2 * 44_100,
    "m4a": 96_000 / 8,
    "webm": 64_000 / 8,
}

IMAGE_PROMPT_DIMENSIONS: dict[str, tuple[str, ...]] = {
    "subject": (
        "portrait",
        "landscape",
        "animal",
        "architectural",
        "still life",
        "fantasy creature",
        "sci-fi robot",
        "historical figure",
        "mythical beast",
        "abstract form",
        "other",
    ),
    "style": (
        "realistic",
        "oil painting",
        "watercolor",
        "pencil sketch",
        "digital art",
        "anime",
        "cyberpunk",
        "impressionist",
        "surrealist",
        "pixel art",
        "other",
    ),
    "quality": (
        "high resolution",
        "4K",
        "ultra detailed",
        "sharp focus",
        "masterpiece",
        "professional",
        "cinematic",
        "octane render",
        "unreal engine",
        "HDR",
        "other",
    ),
    "composition": (
        "front view",
        "side view",
        "aerial view",
        "close up",
        "wide angle",
        "macro",
        "panoramic",
        "symmetrical",
        "rule of thirds",
        "centered",
        "other",
    ),
    "lighting": (
        "natural light",
        "studio lighting",
        "golden hour",
        "neon lighting",
        "dramatic lighting",
        "backlighting",
        "soft lighting",
        "hard lighting",
        "volumetric lighting",
        "rim lighting",
        "other",
    ),
    "color": (
        "vibrant",
        "pastel",
        "monochrome",
        "warm colors",
        "cool colors",
        "complementary colors",
        "neon palette",
        "earthy tones",
        "jewel tones",
        "matte colors",
        "other",
    ),
    "mood": (
        "serene",
        "dramatic",
        "mysterious",
        "joyful",
        "melancholic",
        "energetic",
        "romantic",
        "epic",
        "peaceful",
        "chaotic",
        "other",
    ),
    "environment": (
        "forest",
        "ocean",
        "mountain",
        "cityscape",
        "desert",
        "space",
        "underwater",
        "castle",
        "futuristic city",
        "dreamlike realm",
        "other",
    ),
}
CUSTOM_DIMENSION_MAX_LENGTH = 10
