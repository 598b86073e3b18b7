from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from app.schemas.responses import HealthResponse
from app.services.generation_service import GenerationService, get_generation_service

router = APIRouter(prefix="/api", tags=["Health"])

NO_STORE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health_check(
    response: Response,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> HealthResponse:
    """Health check endpoint.

    Probes every upstream service and reports ``healthy``, ``degraded`` or
    ``unhealthy``. Never rate limited or verification gated.

    Returns:
        HealthResponse: Overall status, uptime and per-service probe results.
    """

    response.headers.update(NO_STORE_HEADERS)
    return await service.check_health()


@router.head("/health")
async def quick_health_check(
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> Response:
    """Load-balancer probe: 200 when the image API answers, else 503."""

    healthy = await service.quick_health()
    return Response(status_code=200 if healthy else 503)
