from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request

from app.adapters.turnstile import AbstractVerifier
from app.core.client_identity import resolve_client_identity
from app.core.errors import ErrorCode, ValidationAppError
from app.core.logging import utc_now_iso
from app.core.turnstile import extract_token, get_turnstile_verifier
from app.schemas.responses import ErrorResponse, TurnstileTestResponse
from app.services.request_validator import read_json_body

router = APIRouter(prefix="/api", tags=["Verification"])


@router.post(
    "/test-turnstile",
    response_model=TurnstileTestResponse,
    responses={400: {"model": ErrorResponse, "description": "No token provided."}},
)
async def turnstile_diagnostics(
    request: Request,
    body: Annotated[dict[str, Any], Depends(read_json_body)],
    verifier: Annotated[AbstractVerifier, Depends(get_turnstile_verifier)],
) -> TurnstileTestResponse:
    """Verify a token and report the raw outcome.

    Diagnostic endpoint for checking the widget/secret pairing. It is not
    gated and never forwards anything upstream.
    """
    token = extract_token(body)
    if not token:
        raise ValidationAppError(
            code=ErrorCode.TURNSTILE_MISSING,
            title="No Turnstile token provided",
            message="Please complete the verification challenge",
        )

    client_ip = resolve_client_identity(request.headers)
    outcome = await verifier.verify(token, client_ip)

    return TurnstileTestResponse(
        success=outcome.success,
        verification=outcome.to_dict(),
        message="Turnstile verification successful" if outcome.success else "Turnstile verification failed",
        client_ip=client_ip,
        timestamp=utc_now_iso(),
    )
