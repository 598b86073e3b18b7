"""Application factory for FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) to improve testability and separation of concerns compared to a
monolithic main.
"""

from __future__ import annotations

from fastapi import FastAPI

from app.api.routes import generation_router, health_router, verification_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.lifespan import lifespan
from app.core.logging import configure_logging
from app.core.middleware import request_context_middleware
from app.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="GenAI Gateway API",
        description=(
            "Gateway in front of a generative AI API (image, text, speech and "
            "transcription). Every generation request is rate limited per client IP, "
            "verified with Cloudflare Turnstile, validated against a declared schema "
            "and only then forwarded upstream. All failures share one JSON error "
            "envelope."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Middleware
    app.middleware("http")(request_context_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(generation_router)
    app.include_router(verification_router)
    app.include_router(health_router)

    # OpenAPI customizations (tags, gate docs)
    apply_openapi_customizations(app)

    return app
