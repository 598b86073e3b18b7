"""Human-verification adapter layer (Cloudflare Turnstile)."""

from app.adapters.turnstile.base import AbstractVerifier, VerificationOutcome
from app.adapters.turnstile.cloudflare_client import TurnstileVerifier

__all__ = [
    "AbstractVerifier",
    "TurnstileVerifier",
    "VerificationOutcome",
]
