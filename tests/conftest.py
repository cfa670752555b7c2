"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any app import so settings pick them up.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("APP_ENVIRONMENT", "testing")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("APP_RATE_LIMIT_QUEUE_POLL_INTERVAL_SECONDS", "0.001")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("APP_INTERNAL_API_KEY", None)

import pytest  # noqa: E402

from app.adapters.rate_limit import PartitionedFixedWindowRateLimiter, Policy  # noqa: E402
from app.core import rate_limit as rate_limit_module  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_rate_limiter():
    """Every test starts with empty windows."""
    rate_limit_module.reset_rate_limiter()
    yield
    rate_limit_module.reset_rate_limiter()


@pytest.fixture
def limiter() -> PartitionedFixedWindowRateLimiter:
    """Limiter with a small global policy (3 per 60s, no queue)."""
    return PartitionedFixedWindowRateLimiter(
        [Policy("global", permit_limit=3, window_seconds=60, queue_limit=0)]
    )
