"""Cloudflare Turnstile siteverify client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.adapters.turnstile.base import AbstractVerifier, VerificationOutcome

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


class TurnstileVerifier(AbstractVerifier):
    """Verify Turnstile tokens with a single siteverify POST.

    Uses one shared ``httpx.AsyncClient``. Failures are never retried here;
    whether to prompt the user again is the caller's decision.
    """

    def __init__(
        self,
        secret_key: str | None,
        *,
        verify_url: str = DEFAULT_VERIFY_URL,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            secret_key: Pre-shared Turnstile secret; ``None`` makes every
                verification fail with ``missing-secret-key``.
            verify_url: siteverify endpoint.
            timeout_seconds: Request timeout in seconds.
            transport: Optional httpx transport (tests inject a mock).
        """
        self._secret_key = secret_key
        self._verify_url = verify_url
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    async def verify(self, token: str | None, remote_ip: str | None = None) -> VerificationOutcome:
        if not token:
            return VerificationOutcome.failed("missing-input-response")

        if not self._secret_key:
            logger.error(
                "turnstile.secret_not_configured",
                extra={"reason": "missing_secret_key"},
            )
            return VerificationOutcome.failed("missing-secret-key")

        form: dict[str, str] = {"secret": self._secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            response = await self._client.post(self._verify_url, data=form)
            response.raise_for_status()
            payload: Any = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "turnstile.verify_http_error",
                extra={"status_code": exc.response.status_code},
            )
            return VerificationOutcome.failed("internal-error")
        except httpx.HTTPError as exc:
            logger.error(
                "turnstile.verify_transport_error",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return VerificationOutcome.failed("internal-error")
        except ValueError as exc:
            logger.error(
                "turnstile.verify_invalid_json",
                extra={"error_msg": str(exc)},
            )
            return VerificationOutcome.failed("internal-error")

        if not isinstance(payload, dict):
            logger.error("turnstile.verify_invalid_payload", extra={"payload_type": type(payload).__name__})
            return VerificationOutcome.failed("internal-error")

        error_codes = payload.get("error-codes")
        if not isinstance(error_codes, list):
            error_codes = []
        return VerificationOutcome(
            success=payload.get("success") is True,
            error_codes=[str(code) for code in error_codes],
            hostname=payload.get("hostname"),
            challenge_timestamp=payload.get("challenge_ts"),
            action=payload.get("action"),
            cdata=payload.get("cdata"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
