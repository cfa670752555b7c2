"""In-memory partitioned fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: each partition has its own lock, so traffic on one partition
  never waits on another. The partition table is only locked to insert a
  first-seen key or to evict idle partitions.
- Windows reset lazily on access. A partition with no traffic at a boundary
  starts its next window on its next attempt, not on a wall-clock tick.
- The partition table grows with the number of distinct keys seen. Nothing is
  evicted unless the owner calls ``evict_idle``.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Admit,
    Decision,
    Policy,
    QueueOrder,
    Queued,
    QueuedTicket,
    Reject,
)
from app.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Partition:
    window_start: float
    count: int = 0
    generation: int = 0
    waiting: deque[QueuedTicket] = field(default_factory=deque)
    retired: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class PartitionedFixedWindowRateLimiter(AbstractRateLimiter):
    """Fixed-window limiter with one independent window per partition key.

    Each registered policy keeps its own partition namespace, so the same key
    (e.g. a client IP) is counted separately by the global policy and by a
    stricter endpoint policy.

    Example:
        >>> limiter = PartitionedFixedWindowRateLimiter()
        >>> limiter.register_policy(Policy("global", permit_limit=2, window_seconds=60))
        >>> limiter.attempt("global", "10.0.0.1", now=0.0)
        Admit(remaining=1, reset_after_seconds=60.0)
    """

    def __init__(
        self,
        policies: list[Policy] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter.

        Args:
            policies: Policies to register up front.
            clock: Monotonic time source used when callers omit ``now``.
        """
        self._clock = clock
        self._policies: dict[str, Policy] = {}
        self._partitions: dict[tuple[str, str], _Partition] = {}
        self._table_lock = threading.Lock()

        for policy in policies or []:
            self.register_policy(policy)

    def register_policy(self, policy: Policy) -> None:
        with self._table_lock:
            if policy.policy_id in self._policies:
                raise ConfigurationError(
                    code="duplicate_policy",
                    message=f"Policy '{policy.policy_id}' is already registered",
                    details={"policy_id": policy.policy_id},
                )
            self._policies[policy.policy_id] = policy

        logger.info(
            "policy.registered",
            extra={
                "policy_id": policy.policy_id,
                "permit_limit": policy.permit_limit,
                "window_s": policy.window_seconds,
                "queue_limit": policy.queue_limit,
                "queue_order": policy.queue_order.value,
                "scope": policy.scope.value,
            },
        )

    def get_policy(self, policy_id: str) -> Policy:
        policy = self._policies.get(policy_id)
        if policy is None:
            raise ConfigurationError(
                code="unknown_policy",
                message=f"Rate limit policy '{policy_id}' is not registered",
                details={"policy_id": policy_id},
            )
        return policy

    def policies(self) -> list[Policy]:
        return list(self._policies.values())

    def attempt(self, policy_id: str, partition_key: str, now: float | None = None) -> Decision:
        """Admit, queue or reject one request for ``partition_key``.

        The whole evaluation (roll-over, count check, increment) runs under the
        partition lock, so concurrent attempts on one partition behave as if
        serialized.

        Args:
            policy_id: Id of a registered policy.
            partition_key: Opaque partition key; "" is one shared bucket.
            now: Monotonic timestamp in seconds. Defaults to the limiter clock.

        Returns:
            Admit, Queued or Reject.

        Raises:
            ConfigurationError: If ``policy_id`` was never registered.
        """
        policy = self.get_policy(policy_id)
        if now is None:
            now = self._clock()

        while True:
            partition = self._get_or_create_partition(policy_id, partition_key, now)
            with partition.lock:
                if partition.retired:
                    # Evicted between lookup and lock; resolve a fresh one.
                    continue
                return self._attempt_locked(policy, partition, partition_key, now)

    def refresh(self, policy_id: str, partition_key: str, now: float | None = None) -> None:
        """Apply a pending roll-over without consuming a permit.

        Waiters call this to release queued tickets once the window they
        were queued in has ended. Unknown partitions are left uncreated.
        """
        policy = self.get_policy(policy_id)
        if now is None:
            now = self._clock()

        partition = self._partitions.get((policy_id, partition_key))
        if partition is None:
            return
        with partition.lock:
            if not partition.retired:
                self._roll_window_locked(policy, partition, partition_key, now)

    def retry_after(self, policy_id: str, partition_key: str, now: float | None = None) -> int:
        """Seconds until the partition's current window ends, after any roll-over.

        Returns 0 for a partition that was never seen.
        """
        policy = self.get_policy(policy_id)
        if now is None:
            now = self._clock()

        partition = self._partitions.get((policy_id, partition_key))
        if partition is None:
            return 0
        with partition.lock:
            if not partition.retired:
                self._roll_window_locked(policy, partition, partition_key, now)
            return self._retry_after(partition.window_start + policy.window_seconds, now)

    def cancel(self, ticket: QueuedTicket) -> bool:
        partition = self._partitions.get((ticket.policy_id, ticket.partition_key))
        if partition is None:
            if ticket.pending:
                ticket._cancel()
                return True
            return False

        with partition.lock:
            if not ticket.pending:
                return False
            try:
                partition.waiting.remove(ticket)
            except ValueError:
                pass
            ticket._cancel()
            return True

    def evict_idle(self, idle_seconds: float, now: float | None = None) -> int:
        """Drop partitions idle for at least ``idle_seconds`` after their window ended.

        Partitions with waiting tickets are kept. Returns the number evicted.
        """
        if now is None:
            now = self._clock()

        evicted = 0
        with self._table_lock:
            for table_key, partition in list(self._partitions.items()):
                policy = self._policies[table_key[0]]
                with partition.lock:
                    window_end = partition.window_start + policy.window_seconds
                    if partition.waiting or now - window_end < idle_seconds:
                        continue
                    partition.retired = True
                del self._partitions[table_key]
                evicted += 1

        if evicted:
            logger.info(
                "rate_limit.partitions_evicted",
                extra={"evicted": evicted, "remaining_partitions": len(self._partitions)},
            )
        return evicted

    def stats(self) -> dict[str, dict[str, int]]:
        """Partition and waiting-ticket counts per policy."""
        with self._table_lock:
            snapshot = list(self._partitions.items())
            result: dict[str, dict[str, int]] = {
                policy_id: {"partitions": 0, "waiting": 0} for policy_id in self._policies
            }

        for (policy_id, _key), partition in snapshot:
            entry = result[policy_id]
            entry["partitions"] += 1
            entry["waiting"] += len(partition.waiting)
        return result

    def _get_or_create_partition(self, policy_id: str, partition_key: str, now: float) -> _Partition:
        table_key = (policy_id, partition_key)
        partition = self._partitions.get(table_key)
        if partition is not None:
            return partition

        with self._table_lock:
            partition = self._partitions.get(table_key)
            if partition is None:
                partition = _Partition(window_start=now)
                self._partitions[table_key] = partition
            return partition

    def _attempt_locked(
        self,
        policy: Policy,
        partition: _Partition,
        partition_key: str,
        now: float,
    ) -> Decision:
        self._roll_window_locked(policy, partition, partition_key, now)

        window_end = partition.window_start + policy.window_seconds
        if partition.count < policy.permit_limit:
            partition.count += 1
            return Admit(
                remaining=policy.permit_limit - partition.count,
                reset_after_seconds=max(0.0, window_end - now),
            )

        retry_after = self._retry_after(window_end, now)
        if len(partition.waiting) < policy.queue_limit:
            ticket = QueuedTicket(
                policy_id=policy.policy_id,
                partition_key=partition_key,
                enqueued_at=now,
            )
            partition.waiting.append(ticket)
            if policy.queue_order is QueueOrder.OLDEST_FIRST:
                position = len(partition.waiting)
            else:
                position = 1
            return Queued(ticket=ticket, position=position, retry_after_seconds=retry_after)

        return Reject(retry_after_seconds=retry_after)

    def _roll_window_locked(
        self,
        policy: Policy,
        partition: _Partition,
        partition_key: str,
        now: float,
    ) -> None:
        if now < partition.window_start + policy.window_seconds:
            return

        partition.window_start = now
        partition.count = 0
        partition.generation += 1

        released = 0
        while partition.waiting and partition.count < policy.permit_limit:
            if policy.queue_order is QueueOrder.OLDEST_FIRST:
                ticket = partition.waiting.popleft()
            else:
                ticket = partition.waiting.pop()
            ticket._admit(now=now, generation=partition.generation)
            partition.count += 1
            released += 1

        if released:
            logger.debug(
                "rate_limit.queue_released",
                extra={
                    "policy_id": policy.policy_id,
                    "partition_key": partition_key,
                    "released": released,
                    "still_waiting": len(partition.waiting),
                    "generation": partition.generation,
                },
            )

    @staticmethod
    def _retry_after(window_end: float, now: float) -> int:
        return max(0, int(math.ceil(window_end - now)))

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"PartitionedFixedWindowRateLimiter(policies={list(self._policies)}, "
            f"partitions={len(self._partitions)})"
        )

