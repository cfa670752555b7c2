from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, filter chain, CORS, handlers,
routers) so tests can build isolated instances.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import health_router, weather_router
from app.core.auth import internal_api_key_filter
from app.core.config import AppSettings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.filters import FilterChain
from app.core.logging import configure_logging
from app.core.middleware import request_id_filter, security_headers_filter
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import get_rate_limiter, rate_limit_filter

logger = logging.getLogger(__name__)


def build_filter_chain() -> FilterChain:
    """Request filters in execution order.

    Correlation first so every later log line and rejection carries the
    request id, hardening headers next so rejections get them too, then rate
    limiting ahead of authentication.
    """
    return FilterChain(
        [
            request_id_filter,
            security_headers_filter,
            rate_limit_filter,
            internal_api_key_filter,
        ]
    )


def cors_origins(app_settings: AppSettings) -> list[str]:
    """Allowed origins for the current environment."""
    if app_settings.is_development:
        return list(app_settings.cors_dev_origins)
    return list(app_settings.cors_origins)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with filters, CORS, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Fixed-Window Gate",
        description=(
            "Placeholder weather API protected by a partitioned fixed-window "
            "rate limiter (per client address), security headers, CORS and an "
            "optional internal API key."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Filter chain (registered first so CORS wraps it)
    app.middleware("http")(build_filter_chain())

    # CORS outermost so preflight requests are answered before any filter
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(settings.app),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Policy"],
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(weather_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    # Build the limiter eagerly so policy misconfiguration fails at startup
    limiter = get_rate_limiter()
    logger.info(
        "app.created",
        extra={
            "environment": settings.app.environment,
            "rate_limit_enabled": settings.app.rate_limit_enabled,
            "policies": [p.policy_id for p in limiter.policies()],
            "internal_auth": bool(settings.app.internal_api_key),
        },
    )

    return app
