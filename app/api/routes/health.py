from __future__ import annotations

from fastapi import APIRouter

from app.core.rate_limit import get_rate_limiter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Returns a simple status response to verify the API is operational.
    Used by load balancers and monitoring systems to determine service health.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/rate-limits")
def rate_limit_stats() -> dict:
    """Registered policies and current partition counts.

    The partition table grows with the number of distinct clients seen,
    so this is the place to watch it.
    """

    limiter = get_rate_limiter()
    stats = limiter.stats()
    return {
        "policies": [
            {
                "policy_id": p.policy_id,
                "permit_limit": p.permit_limit,
                "window_seconds": p.window_seconds,
                "queue_limit": p.queue_limit,
                "queue_order": p.queue_order.value,
                "scope": p.scope.value,
                **stats.get(p.policy_id, {}),
            }
            for p in limiter.policies()
        ]
    }
