"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- The verification token fields on gated request bodies
- Rate-limit headers on documented 429 responses
- An explicit "never gated" marker on health endpoints

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TURNSTILE_MARKER = "x-turnstile-required"

TOKEN_PROPERTIES: Dict[str, Any] = {
    "turnstileToken": {
        "type": "string",
        "title": "Turnstiletoken",
        "description": "Cloudflare Turnstile token produced by the client widget.",
    },
    "cf-turnstile-response": {
        "type": "string",
        "title": "Cf-Turnstile-Response",
        "description": "Alternative name for the Turnstile token (form widget default).",
    },
}

RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {"schema": {"type": "integer"}, "description": "Requests allowed per window."},
    "X-RateLimit-Remaining": {"schema": {"type": "integer"}, "description": "Requests left in the window."},
    "X-RateLimit-Reset": {"schema": {"type": "string", "format": "date-time"}, "description": "Window end (UTC)."},
    "Retry-After": {"schema": {"type": "integer"}, "description": "Seconds until the window resets."},
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and gate docs.

    - Adds tags metadata if not present
    - For operations marked ``x-turnstile-required``, documents the token
      fields on the JSON body
    - Adds rate-limit headers to every documented 429 response
    - Marks health endpoints with ``x-turnstile-required: false``
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        # Tags metadata
        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Generation",
                "description": (
                    "Image, text, speech and transcription endpoints. Rate limited per IP "
                    "and gated by Cloudflare Turnstile (except prompt optimization)."
                ),
            },
            {
                "name": "Verification",
                "description": "Turnstile diagnostics.",
            },
            {
                "name": "Health",
                "description": "Upstream liveness checks. Never rate limited or gated.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path, methods in paths.items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue

                if path.endswith("/health"):
                    method_obj[TURNSTILE_MARKER] = False
                    continue

                if method_obj.get(TURNSTILE_MARKER):
                    body_schema = (
                        method_obj.get("requestBody", {})
                        .get("content", {})
                        .get("application/json", {})
                        .get("schema")
                    )
                    if isinstance(body_schema, dict):
                        properties = body_schema.setdefault("properties", {})
                        for name, prop in TOKEN_PROPERTIES.items():
                            properties.setdefault(name, prop)

                too_many = method_obj.get("responses", {}).get("429")
                if isinstance(too_many, dict):
                    too_many.setdefault("headers", {}).update(RATE_LIMIT_HEADERS)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
