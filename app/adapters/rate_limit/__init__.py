"""Rate limiting adapters.

This package holds the framework-free limiter: policy and decision types in
``base`` and the in-process partitioned fixed-window implementation in
``in_memory``. The HTTP layer depends only on the abstract interface so the
storage backend can be swapped without touching routes.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Admit,
    Decision,
    Policy,
    PolicyScope,
    QueueOrder,
    Queued,
    QueuedTicket,
    Reject,
    TicketStatus,
)
from app.adapters.rate_limit.in_memory import PartitionedFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "Admit",
    "Decision",
    "PartitionedFixedWindowRateLimiter",
    "Policy",
    "PolicyScope",
    "QueueOrder",
    "Queued",
    "QueuedTicket",
    "Reject",
    "TicketStatus",
]
