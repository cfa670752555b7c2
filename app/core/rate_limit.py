"""Rate limiting wiring for the HTTP layer.

This module connects the framework-free limiter in ``app.adapters.rate_limit``
to FastAPI:

- builds the process-wide limiter from settings and registers its policies
- derives the partition key for a request (client address)
- waits for queued requests to be admitted, or gives up after a timeout
- translates rejections into 429 responses carrying ``Retry-After``

Global policies are enforced by ``rate_limit_filter`` for every request;
endpoint policies by the ``require_rate_limit(policy_id)`` dependency.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Admit,
    Policy,
    PolicyScope,
    Queued,
)
from app.adapters.rate_limit.in_memory import PartitionedFixedWindowRateLimiter
from app.core.config import AppSettings, settings
from app.core.errors import RateLimitedAppError
from app.core.logging import get_request_id, hash_client_key

logger = logging.getLogger(__name__)

GLOBAL_POLICY_ID = "global"
AUTH_POLICY_ID = "auth_endpoints"

RATE_LIMIT_EXEMPT_PATHS: tuple[str, ...] = ("/health", "/docs", "/redoc", "/openapi.json")

UNKNOWN_CLIENT = "unknown"

_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple | None = None


def build_policies(app_settings: AppSettings) -> list[Policy]:
    """Build the policies registered at startup.

    Args:
        app_settings: Application settings holding the policy numbers.

    Returns:
        The global per-client policy and the stricter sensitive-endpoint policy.
    """

    return [
        Policy(
            policy_id=GLOBAL_POLICY_ID,
            permit_limit=app_settings.rate_limit_global_permit_limit,
            window_seconds=app_settings.rate_limit_global_window_seconds,
            queue_limit=app_settings.rate_limit_global_queue_limit,
            queue_order=app_settings.rate_limit_global_queue_order,
            scope=PolicyScope.GLOBAL,
        ),
        Policy(
            policy_id=AUTH_POLICY_ID,
            permit_limit=app_settings.rate_limit_auth_permit_limit,
            window_seconds=app_settings.rate_limit_auth_window_seconds,
            queue_limit=app_settings.rate_limit_auth_queue_limit,
            scope=PolicyScope.ENDPOINT,
        ),
    ]


def _policy_config_key(app_settings: AppSettings) -> tuple:
    return (
        app_settings.rate_limit_global_permit_limit,
        app_settings.rate_limit_global_window_seconds,
        app_settings.rate_limit_global_queue_limit,
        app_settings.rate_limit_global_queue_order,
        app_settings.rate_limit_auth_permit_limit,
        app_settings.rate_limit_auth_window_seconds,
        app_settings.rate_limit_auth_queue_limit,
    )


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.

    Returns:
        AbstractRateLimiter: Limiter with the startup policies registered.
    """

    global _limiter, _limiter_config

    config = _policy_config_key(settings.app)
    if _limiter is None or _limiter_config != config:
        _limiter = PartitionedFixedWindowRateLimiter(build_policies(settings.app), clock=now)
        _limiter_config = config

    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter so the next request starts from empty windows."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def now() -> float:
    """Monotonic clock shared by the HTTP layer and the limiter."""

    return time.monotonic()


def client_partition_key(request: Request) -> str:
    """Derive the partition key identifying the calling client.

    Uses the first X-Forwarded-For entry when forwarded headers are trusted
    (deployments behind a reverse proxy), then the connection address.

    Args:
        request: FastAPI request.

    Returns:
        str: Client address, or "unknown" if none is available.
    """

    if settings.app.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


async def wait_for_admission(
    limiter: AbstractRateLimiter,
    queued: Queued,
    *,
    timeout: float,
    poll_interval: float,
    clock: Callable[[], float] | None = None,
) -> bool:
    """Wait for a queued ticket to be admitted.

    The limiter releases tickets lazily, so the waiter drives the roll-over
    itself by calling ``refresh`` until the ticket is admitted or ``timeout``
    elapses. On timeout the ticket is cancelled to free its queue slot.

    Args:
        limiter: Limiter that issued the ticket.
        queued: The Queued decision.
        timeout: Maximum seconds to wait.
        poll_interval: Seconds between checks.
        clock: Time source (defaults to the module clock).

    Returns:
        True if the request was admitted.
    """

    clock = clock or now
    ticket = queued.ticket
    deadline = clock() + timeout

    while ticket.pending:
        current = clock()
        limiter.refresh(ticket.policy_id, ticket.partition_key, current)
        if not ticket.pending:
            break
        if current >= deadline:
            limiter.cancel(ticket)
            break
        await asyncio.sleep(max(0.0, min(poll_interval, deadline - current)))

    return ticket.admitted


async def check_rate_limit(request: Request, policy_id: str) -> int | None:
    """Consume one attempt under ``policy_id`` for the calling client.

    Queued requests are held here until admitted or timed out.

    Args:
        request: FastAPI request.
        policy_id: Registered policy to evaluate.

    Returns:
        None if the request may proceed, otherwise the retry-after seconds.

    Raises:
        ConfigurationError: If the policy was never registered.
    """

    limiter = get_rate_limiter()
    key = client_partition_key(request)
    key_hash = hash_client_key(key)

    decision = limiter.attempt(policy_id, key, now())

    if isinstance(decision, Admit):
        logger.debug(
            "rate_limit.allowed",
            extra={"policy_id": policy_id, "key_hash": key_hash, "remaining": decision.remaining},
        )
        return None

    if isinstance(decision, Queued):
        logger.info(
            "rate_limit.queued",
            extra={
                "policy_id": policy_id,
                "key_hash": key_hash,
                "position": decision.position,
                "retry_after_s": decision.retry_after_seconds,
            },
        )
        admitted = await wait_for_admission(
            limiter,
            decision,
            timeout=settings.app.rate_limit_queue_wait_timeout_seconds,
            poll_interval=settings.app.rate_limit_queue_poll_interval_seconds,
        )
        if admitted:
            return None

        retry_after = limiter.retry_after(policy_id, key, now())
        logger.warning(
            "rate_limit.queue_timeout",
            extra={
                "policy_id": policy_id,
                "key_hash": key_hash,
                "path": request.url.path,
                "retry_after_s": retry_after,
            },
        )
        return retry_after

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "policy_id": policy_id,
            "key_hash": key_hash,
            "path": request.url.path,
            "retry_after_s": decision.retry_after_seconds,
        },
    )
    return decision.retry_after_seconds


def rate_limited_response(retry_after: int, policy_id: str) -> JSONResponse:
    """Build the 429 response for a rejected request.

    The retry-after value is passed through unmodified to both the header
    and the body.
    """

    headers = {"Retry-After": str(retry_after)}
    if settings.app.rate_limit_include_headers:
        policy = next((p for p in get_rate_limiter().policies() if p.policy_id == policy_id), None)
        if policy is not None:
            headers["X-RateLimit-Limit"] = str(policy.permit_limit)
            headers["X-RateLimit-Policy"] = policy_id

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "rate_limit_exceeded",
                "message": "Too many requests",
                "request_id": get_request_id(),
                "details": {"retry_after": retry_after, "policy": policy_id},
            }
        },
        headers=headers,
    )


def _is_exempt(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in RATE_LIMIT_EXEMPT_PATHS)


async def rate_limit_filter(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Request filter enforcing every globally scoped policy.

    CORS preflight requests and exempt paths pass through untouched.
    """

    if not settings.app.rate_limit_enabled or request.method == "OPTIONS" or _is_exempt(request.url.path):
        return await call_next(request)

    limiter = get_rate_limiter()
    for policy in limiter.policies():
        if policy.scope is not PolicyScope.GLOBAL:
            continue
        retry_after = await check_rate_limit(request, policy.policy_id)
        if retry_after is not None:
            return rate_limited_response(retry_after, policy.policy_id)

    return await call_next(request)


def require_rate_limit(policy_id: str) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing an endpoint policy.

    Usage:
        @router.get("/sensitive", dependencies=[Depends(require_rate_limit(AUTH_POLICY_ID))])

    Args:
        policy_id: Registered policy to enforce.

    Returns:
        Async dependency raising RateLimitedAppError when the request is rejected.
    """

    async def enforce_rate_limit(request: Request) -> None:
        if not settings.app.rate_limit_enabled:
            return

        retry_after = await check_rate_limit(request, policy_id)
        if retry_after is not None:
            raise RateLimitedAppError(
                code="rate_limit_exceeded",
                message="Too many requests",
                details={"retry_after": retry_after, "policy": policy_id},
            )

    return enforce_rate_limit
