"""Internal API key authentication.

When ``APP_INTERNAL_API_KEY`` is configured, every non-exempt request must
carry the same value in the ``X-Internal-Api-Key`` header. This guards the
API against direct calls that bypass the trusted front-end. When no key is
configured the check is disabled.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.filters import CallNext
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)

INTERNAL_API_KEY_HEADER = "X-Internal-Api-Key"

AUTH_EXEMPT_PATHS: tuple[str, ...] = ("/health",)


def validate_internal_api_key(provided_key: str | None) -> None:
    """Validate the provided key against the configured internal key.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: Header value, or None when the header is absent.

    Raises:
        AuthenticationAppError: If a key is configured and does not match.
    """
    expected = settings.app.internal_api_key
    if not expected:
        return

    if provided_key is None:
        raise AuthenticationAppError(
            code="unauthorized",
            message="Unauthorized",
            details={"hint": f"Provide the {INTERNAL_API_KEY_HEADER} header"},
        )

    if not hmac.compare_digest(provided_key.encode(), expected.encode()):
        logger.warning(
            "auth.invalid_internal_key",
            extra={"api_key_hash": hashlib.sha256(provided_key.encode()).hexdigest()[:16]},
        )
        raise AuthenticationAppError(code="unauthorized", message="Unauthorized")


async def internal_api_key_filter(request: Request, call_next: CallNext) -> Response:
    """Request filter rejecting calls without the internal API key with 401."""

    if not settings.app.internal_api_key or request.url.path in AUTH_EXEMPT_PATHS:
        return await call_next(request)

    try:
        validate_internal_api_key(request.headers.get(INTERNAL_API_KEY_HEADER))
    except AuthenticationAppError as exc:
        logger.warning(
            "auth.rejected",
            extra={"path": request.url.path, "reason": exc.code},
        )
        return JSONResponse(
            status_code=401,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "request_id": get_request_id(),
                }
            },
        )

    return await call_next(request)
