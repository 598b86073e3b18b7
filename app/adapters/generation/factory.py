"""Factory pattern for creating generation client instances."""

import httpx

from app.adapters.generation.base import AbstractGenerationClient
from app.adapters.generation.pollinations_client import PollinationsClient
from app.core.config import UpstreamSettings, settings


def create_generation_client(
    upstream: UpstreamSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AbstractGenerationClient:
    """Instantiate the upstream generation client from configuration.

    Args:
        upstream: Upstream settings; defaults to the global settings.
        transport: Optional httpx transport (tests inject ``httpx.MockTransport``).

    Returns:
        AbstractGenerationClient: Configured client instance.
    """
    cfg = upstream or settings.upstream
    return PollinationsClient(
        image_base_url=cfg.image_base_url,
        text_base_url=cfg.text_base_url,
        openai_base_url=cfg.openai_base_url,
        api_token=cfg.api_token,
        referrer=cfg.referrer,
        image_timeout_seconds=cfg.image_timeout_seconds,
        text_timeout_seconds=cfg.text_timeout_seconds,
        speech_timeout_seconds=cfg.speech_timeout_seconds,
        transcription_timeout_seconds=cfg.transcription_timeout_seconds,
        transport=transport,
    )
