from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of a single human-verification attempt.

    Attributes:
        success: Whether the token was accepted.
        error_codes: Ordered reason codes (empty on success).
        hostname: Hostname the challenge was solved on.
        challenge_timestamp: ISO timestamp of the challenge.
        action: Widget action name, if configured.
        cdata: Customer data echoed by the widget, if configured.
    """

    success: bool
    error_codes: list[str] = field(default_factory=list)
    hostname: str | None = None
    challenge_timestamp: str | None = None
    action: str | None = None
    cdata: str | None = None

    @classmethod
    def failed(cls, *error_codes: str) -> "VerificationOutcome":
        return cls(success=False, error_codes=list(error_codes))

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "errorCodes": list(self.error_codes),
            "hostname": self.hostname,
            "challengeTimestamp": self.challenge_timestamp,
            "action": self.action,
        }


class AbstractVerifier(ABC):
    """Interface for human-verification clients."""

    @abstractmethod
    async def verify(self, token: str | None, remote_ip: str | None = None) -> VerificationOutcome:
        """Verify a client-supplied challenge token.

        Must never raise: transport and parse failures are reported as an
        unsuccessful outcome.

        Args:
            token: Opaque token produced by the client widget.
            remote_ip: Optional client identity forwarded for replay checks.

        Returns:
            VerificationOutcome for this token.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the client."""
        return None
