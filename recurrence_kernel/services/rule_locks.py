"""
RuleLockRegistry -- per-rule mutual exclusion inside one process.

Contract:
    ``hold(*rule_ids)`` acquires one lock per distinct rule id, in sorted
    order, and releases them on exit.  Sweeps, scoped mutations and
    cascades all go through the same registry, so a backfill can never
    interleave with a split or delete of the same rule.

Architecture: recurrence_kernel/services.  Complements the database row
    lock (``SELECT ... FOR UPDATE`` on the rule row, see ``SeriesStore``),
    which serializes across processes on PostgreSQL.

Invariants enforced:
    - Locks are always taken in sorted id order (no lock-order deadlocks
      when a cascade holds several rules).
    - Locks are not re-entrant: callers acquire once at the transaction
      boundary.
    - A rule's entry lives only while someone holds or waits on it; the
      registry does not grow with the number of rules ever locked.

Failure modes:
    - RuleLockTimeoutError when a lock is not acquired within the timeout;
      every lock already taken by that call is released first.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from recurrence_kernel.exceptions import RuleLockTimeoutError
from recurrence_kernel.logging_config import get_logger

logger = get_logger("services.rule_locks")


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class RuleLockRegistry:
    """Named locks keyed by rule id."""

    def __init__(self, timeout_seconds: float = 30.0):
        self._timeout = timeout_seconds
        self._slots: dict[str, _Slot] = {}
        self._guard = threading.Lock()

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def tracked_count(self) -> int:
        """Rule ids currently held or waited on."""
        with self._guard:
            return len(self._slots)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.users += 1
            return slot.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            slot = self._slots[key]
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    def is_locked(self, rule_id: UUID | str) -> bool:
        with self._guard:
            slot = self._slots.get(str(rule_id))
            return slot is not None and slot.lock.locked()

    @contextmanager
    def hold(self, *rule_ids: UUID | str | None) -> Iterator[tuple[str, ...]]:
        keys = tuple(sorted({str(r) for r in rule_ids if r is not None}))
        checked_out: list[str] = []
        acquired: list[threading.Lock] = []
        try:
            for key in keys:
                lock = self._checkout(key)
                checked_out.append(key)
                if not lock.acquire(timeout=self._timeout):
                    logger.warning(
                        "rule_lock_timeout",
                        extra={"rule_id": key, "timeout_seconds": self._timeout},
                    )
                    raise RuleLockTimeoutError(key, self._timeout)
                acquired.append(lock)
            yield keys
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in reversed(checked_out):
                self._checkin(key)


_default_registry = RuleLockRegistry()


def get_rule_lock_registry() -> RuleLockRegistry:
    """Process-wide registry shared by the facade and batch tasks."""
    return _default_registry
