"""Generation adapter layer - abstracts over the upstream generative API."""

from app.adapters.generation.base import AbstractGenerationClient, ServiceProbe, UpstreamCallError
from app.adapters.generation.factory import create_generation_client
from app.adapters.generation.pollinations_client import PollinationsClient

__all__ = [
    "AbstractGenerationClient",
    "PollinationsClient",
    "ServiceProbe",
    "UpstreamCallError",
    "create_generation_client",
]
