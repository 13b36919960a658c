"""
Recurring series value objects (``recurrence_kernel.domain.recurring``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of the engine: the
``RecurringRule`` a user declares, the ``Instance`` records materialized
from it, the ``OwnerRef`` that scopes both, and the ``SeriesPatch`` applied
by scoped edits.  Rules and instances are two explicit types joined by
``Instance.parent_recurring_id``; there is no runtime branching on "what
kind of row is this".

Architecture position
---------------------
**Kernel > Domain** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All value objects are ``frozen=True``.
* A ``RecurringRule`` has no parent reference; only ``Instance`` does.
* An ``Instance`` with ``parent_recurring_id is None`` is a plain one-off
  record and bypasses all series logic.
* Settled instances (``paid`` / ``completed``) represent real past events
  and are never removed by automatic stops or cascades.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class RuleKind(str, Enum):
    """What a rule (and its instances) represents."""

    EXPENSE = "expense"
    REVENUE = "revenue"
    REMINDER = "reminder"


class FrequencyUnit(str, Enum):
    """Canonical calendar units for recurrence arithmetic."""

    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


class SeriesScope(str, Enum):
    """How far a scoped edit or delete reaches into a series."""

    FUTURE = "future"  # From a pivot date forward
    ALL = "all"  # The entire series, history included


class OwnerScopeType(str, Enum):
    """Kind of entity that owns a rule or record."""

    ORGANIZATION = "organization"
    PROPERTY = "property"
    UNIT = "unit"
    ENTITY = "entity"
    LEASE = "lease"
    TENANT_GROUP = "tenant_group"
    ASSET = "asset"


class RuleStatus(str, Enum):
    """Lifecycle status of a recurring rule."""

    ACTIVE = "active"  # Swept and backfilled
    ENDED = "ended"  # Stopped by a scoped delete
    TERMINATED = "terminated"  # Stopped by an owner lifecycle cascade


class PaymentStatus(str, Enum):
    """Payment status of expense and revenue instances."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class ReminderStatus(str, Enum):
    """Status of reminder instances."""

    PENDING = "pending"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


SETTLED_STATUSES: frozenset[str] = frozenset({
    PaymentStatus.PAID.value,
    ReminderStatus.COMPLETED.value,
})

OPEN_REMINDER_STATUSES: frozenset[str] = frozenset({
    ReminderStatus.PENDING.value,
    ReminderStatus.OVERDUE.value,
})


def default_instance_status(kind: RuleKind | str) -> str:
    """Status given to a freshly generated instance.

    Generated expenses start unpaid; generated revenue is assumed collected;
    reminders start pending.
    """
    kind = RuleKind(kind)
    if kind == RuleKind.EXPENSE:
        return PaymentStatus.UNPAID.value
    if kind == RuleKind.REVENUE:
        return PaymentStatus.PAID.value
    return ReminderStatus.PENDING.value


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True)
class OwnerRef:
    """Reference to the entity that owns a rule or record."""

    scope_type: OwnerScopeType
    scope_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "scope_type", OwnerScopeType(self.scope_type))
        object.__setattr__(self, "scope_id", str(self.scope_id))

    def __str__(self) -> str:
        return f"{self.scope_type.value}:{self.scope_id}"


@dataclass(frozen=True)
class RecurringRule:
    """A user-declared template for a repeating transaction or reminder.

    The anchor date is the first occurrence and is represented by the rule
    itself; generated instances start strictly after it.  ``frequency_unit``
    is kept as stored so that legacy synonyms written before normalization
    are still recognised at expansion time.
    """

    id: UUID
    kind: RuleKind
    org_id: str
    owner: OwnerRef
    anchor_date: date
    frequency_unit: str
    interval: int = 1
    explicit_end_date: date | None = None
    title: str = ""
    amount: Decimal | None = None
    category: str | None = None
    notes: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    status: RuleStatus = RuleStatus.ACTIVE
    terminated_on: date | None = None

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE


@dataclass(frozen=True)
class Instance:
    """One concrete, independently editable record.

    Generated occurrences carry ``parent_recurring_id``; plain one-off
    transactions and reminders leave it ``None``.
    """

    id: UUID
    parent_recurring_id: UUID | None
    kind: RuleKind
    org_id: str
    owner: OwnerRef
    occurrence_date: date
    status: str
    title: str = ""
    amount: Decimal | None = None
    category: str | None = None
    notes: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    completed_at: datetime | None = None
    lead_days: int | None = None

    @property
    def is_series_member(self) -> bool:
        return self.parent_recurring_id is not None

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES


@dataclass(frozen=True)
class SeriesPatch:
    """Changes applied by ``update_series``.

    ``None`` means "leave unchanged".  Payload fields apply to the rule and
    to instances in scope; ``status`` applies to instances only; schedule
    fields (``frequency_unit``, ``interval``, ``explicit_end_date``,
    ``clear_end_date``) apply to the rule only.
    """

    title: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    notes: str | None = None
    payload: dict[str, Any] | None = None
    status: str | None = None
    frequency_unit: str | None = None
    interval: int | None = None
    explicit_end_date: date | None = None
    clear_end_date: bool = False

    _PAYLOAD_FIELDS = ("title", "amount", "category", "notes", "payload")

    def payload_changes(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in self._PAYLOAD_FIELDS
            if getattr(self, name) is not None
        }

    @property
    def has_schedule_change(self) -> bool:
        return (
            self.frequency_unit is not None
            or self.interval is not None
            or self.explicit_end_date is not None
            or self.clear_end_date
        )

    @property
    def is_empty(self) -> bool:
        return (
            not self.payload_changes()
            and self.status is None
            and not self.has_schedule_change
        )


@dataclass(frozen=True)
class Lease:
    """A lease that can own rules and reminders."""

    id: UUID
    org_id: str
    start_date: date
    end_date: date
    status: str
    unit_id: str | None = None
    tenant_group_id: str | None = None
    rent: Decimal | None = None

    @property
    def owner_ref(self) -> OwnerRef:
        return OwnerRef(OwnerScopeType.LEASE, str(self.id))


class LeaseStatus(str, Enum):
    """Lease lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"
