"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.

A limiter evaluates named ``Policy`` objects against opaque partition keys and
returns one of three decisions:

- ``Admit``: the request proceeds, one permit of the current window is used.
- ``Queued``: the window is full but the policy's queue had room; the caller
  holds a ``QueuedTicket`` that is admitted when a later window opens.
- ``Reject``: neither a permit nor a queue slot was available.

Decisions are plain return values. Only misconfiguration raises
(``ConfigurationError``).
"""

from __future__ import annotations

import enum
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from app.core.errors import ConfigurationError


class QueueOrder(str, enum.Enum):
    """Order in which waiting tickets are released on window roll-over."""

    OLDEST_FIRST = "oldest_first"
    NEWEST_FIRST = "newest_first"


class PolicyScope(str, enum.Enum):
    """Where a policy is applied.

    ``GLOBAL`` policies are enforced for every request by the filter chain;
    ``ENDPOINT`` policies only on routes that opt in.
    """

    GLOBAL = "global"
    ENDPOINT = "endpoint"


@dataclass(frozen=True)
class Policy:
    """Immutable fixed-window rule.

    Attributes:
        policy_id: Unique name used by callers to reference the policy.
        permit_limit: Admissions allowed per window and partition.
        window_seconds: Window duration in seconds.
        queue_limit: Maximum tickets waiting per partition (0 disables queueing).
        queue_order: Release order for waiting tickets.
        scope: Whether the policy applies globally or to opted-in endpoints.
    """

    policy_id: str
    permit_limit: int
    window_seconds: float
    queue_limit: int = 0
    queue_order: QueueOrder = QueueOrder.OLDEST_FIRST
    scope: PolicyScope = PolicyScope.ENDPOINT

    def __post_init__(self) -> None:
        if not self.policy_id:
            raise ConfigurationError(
                code="invalid_policy",
                message="policy_id must be a non-empty string",
                details={"field": "policy_id"},
            )
        if self.permit_limit < 1:
            raise ConfigurationError(
                code="invalid_policy",
                message="permit_limit must be >= 1",
                details={"policy_id": self.policy_id, "field": "permit_limit", "value": self.permit_limit},
            )
        if not self.window_seconds > 0 or math.isinf(self.window_seconds):
            raise ConfigurationError(
                code="invalid_policy",
                message="window_seconds must be a finite number > 0",
                details={"policy_id": self.policy_id, "field": "window_seconds", "value": self.window_seconds},
            )
        if self.queue_limit < 0:
            raise ConfigurationError(
                code="invalid_policy",
                message="queue_limit must be >= 0",
                details={"policy_id": self.policy_id, "field": "queue_limit", "value": self.queue_limit},
            )
        # Accept plain strings from configuration.
        for name, enum_type in (("queue_order", QueueOrder), ("scope", PolicyScope)):
            value = getattr(self, name)
            try:
                object.__setattr__(self, name, enum_type(value))
            except ValueError as exc:
                allowed = ", ".join(member.value for member in enum_type)
                raise ConfigurationError(
                    code="invalid_policy",
                    message=f"{name} must be one of: {allowed}",
                    details={"policy_id": self.policy_id, "field": name, "value": value},
                ) from exc


class TicketStatus(str, enum.Enum):
    PENDING = "pending"
    ADMITTED = "admitted"
    CANCELLED = "cancelled"


@dataclass(eq=False)
class QueuedTicket:
    """Handle for a request waiting for a permit in a later window.

    Status transitions happen only inside the limiter while it holds the
    partition lock. ``wait`` blocks the calling thread; async callers should
    poll ``status`` and call the limiter's ``refresh`` instead.
    """

    policy_id: str
    partition_key: str
    enqueued_at: float
    status: TicketStatus = TicketStatus.PENDING
    admitted_at: float | None = None
    generation: int | None = None
    _event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def pending(self) -> bool:
        return self.status is TicketStatus.PENDING

    @property
    def admitted(self) -> bool:
        return self.status is TicketStatus.ADMITTED

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the ticket leaves the pending state.

        Returns:
            True if the ticket was admitted, False on cancellation or timeout.
        """
        self._event.wait(timeout)
        return self.admitted

    def _admit(self, *, now: float, generation: int) -> None:
        self.status = TicketStatus.ADMITTED
        self.admitted_at = now
        self.generation = generation
        self._event.set()

    def _cancel(self) -> None:
        self.status = TicketStatus.CANCELLED
        self._event.set()


@dataclass(frozen=True)
class Admit:
    """Request admitted in the current window.

    Attributes:
        remaining: Permits left in the current window for this partition.
        reset_after_seconds: Seconds until the current window ends.
    """

    remaining: int
    reset_after_seconds: float


@dataclass(frozen=True)
class Queued:
    """Request parked until a later window frees capacity.

    Attributes:
        ticket: Handle to await admission or cancel.
        position: 1-based position in release order at enqueue time.
        retry_after_seconds: Whole seconds until the current window resets.
    """

    ticket: QueuedTicket
    position: int
    retry_after_seconds: int


@dataclass(frozen=True)
class Reject:
    """Request refused; retry after the given number of whole seconds."""

    retry_after_seconds: int


Decision = Admit | Queued | Reject


class AbstractRateLimiter(ABC):
    """Interface for policy-based rate limiters."""

    @abstractmethod
    def register_policy(self, policy: Policy) -> None:
        """Register a policy before any ``attempt`` references it.

        Raises:
            ConfigurationError: If a policy with the same id already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def get_policy(self, policy_id: str) -> Policy:
        """Return a registered policy.

        Raises:
            ConfigurationError: If the policy id is unknown.
        """
        raise NotImplementedError

    @abstractmethod
    def policies(self) -> list[Policy]:
        """Registered policies in registration order."""
        raise NotImplementedError

    @abstractmethod
    def attempt(self, policy_id: str, partition_key: str, now: float) -> Decision:
        """Try to admit one request for a partition under a policy.

        Args:
            policy_id: Id of a registered policy.
            partition_key: Opaque partition identifier ("" is a valid key).
            now: Monotonic timestamp in seconds supplied by the caller.

        Returns:
            Admit, Queued or Reject.

        Raises:
            ConfigurationError: If the policy id is unknown.
        """
        raise NotImplementedError

    @abstractmethod
    def refresh(self, policy_id: str, partition_key: str, now: float) -> None:
        """Roll the partition's window over if it expired, releasing tickets."""
        raise NotImplementedError

    @abstractmethod
    def retry_after(self, policy_id: str, partition_key: str, now: float) -> int:
        """Whole seconds until the partition's current window ends.

        Applies a pending roll-over first and consumes no permit.
        """
        raise NotImplementedError

    @abstractmethod
    def cancel(self, ticket: QueuedTicket) -> bool:
        """Withdraw a pending ticket. Returns True if it was still pending."""
        raise NotImplementedError

    @abstractmethod
    def evict_idle(self, idle_seconds: float, now: float) -> int:
        """Drop idle partitions without waiters. Returns the number dropped."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, dict[str, int]]:
        """Partition and waiting-ticket counts per policy id."""
        raise NotImplementedError
