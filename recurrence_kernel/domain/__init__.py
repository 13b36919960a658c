"""
Pure domain layer.

Value objects, calendar arithmetic, series expansion and reconciliation
with NO dependencies on the ORM, the database, or I/O (time arrives
through an injected Clock).
"""

from recurrence_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
)
from recurrence_kernel.domain.expander import (
    DEFAULT_LIMITS,
    ExpansionLimits,
    SeriesExpander,
    series_boundary,
)
from recurrence_kernel.domain.reconciler import InstanceReconciler
from recurrence_kernel.domain.recurrence import next_occurrence, normalize_frequency
from recurrence_kernel.domain.recurring import (
    FrequencyUnit,
    Instance,
    Lease,
    LeaseStatus,
    OwnerRef,
    OwnerScopeType,
    PaymentStatus,
    RecurringRule,
    ReminderStatus,
    RuleKind,
    RuleStatus,
    SeriesPatch,
    SeriesScope,
)
from recurrence_kernel.domain.results import (
    BackfillResult,
    BackfillStatus,
    CascadeResult,
    MutationStatus,
    RuleCreationResult,
    SeriesMutationResult,
    SweepError,
    SweepResult,
)

__all__ = [
    "BackfillResult",
    "BackfillStatus",
    "CascadeResult",
    "Clock",
    "DEFAULT_LIMITS",
    "DeterministicClock",
    "ExpansionLimits",
    "FrequencyUnit",
    "Instance",
    "InstanceReconciler",
    "Lease",
    "LeaseStatus",
    "MutationStatus",
    "OwnerRef",
    "OwnerScopeType",
    "PaymentStatus",
    "RecurringRule",
    "ReminderStatus",
    "RuleCreationResult",
    "RuleKind",
    "RuleStatus",
    "SeriesExpander",
    "SeriesMutationResult",
    "SeriesPatch",
    "SeriesScope",
    "SweepError",
    "SweepResult",
    "SystemClock",
    "next_occurrence",
    "normalize_frequency",
    "series_boundary",
]
