"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- The internal API key security scheme (``X-Internal-Api-Key``), applied only
  when a key is configured, with health endpoints exempted
- A shared 429 response documenting ``Retry-After``
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.auth import INTERNAL_API_KEY_HEADER
from app.core.config import settings

_RATE_LIMITED_RESPONSE: Dict[str, Any] = {
    "description": "Too many requests. Retry after the number of seconds in Retry-After.",
    "headers": {
        "Retry-After": {
            "description": "Seconds until the current rate limit window resets.",
            "schema": {"type": "integer"},
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        if settings.app.internal_api_key:
            components = schema.setdefault("components", {})
            security_schemes = components.setdefault("securitySchemes", {})
            security_schemes.setdefault(
                "InternalApiKey",
                {
                    "type": "apiKey",
                    "in": "header",
                    "name": INTERNAL_API_KEY_HEADER,
                    "description": "Shared key between the front-end and this API.",
                },
            )
            schema.setdefault("security", [{"InternalApiKey": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {"name": "Weather", "description": "Placeholder forecast endpoints."},
            {"name": "Health", "description": "Liveness checks and rate limiter state."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path == "/health":
                    method_obj["security"] = []
                elif not path.startswith("/health"):
                    method_obj.setdefault("responses", {}).setdefault("429", _RATE_LIMITED_RESPONSE)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
