"""
Result objects returned by recurrence services.

Follows the ``*Result`` + status-enum convention: callers branch on
``status`` (or ``is_success``) rather than on exceptions for expected
outcomes such as "not found" or "already up to date".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

from recurrence_kernel.domain.recurring import OwnerRef, RecurringRule, SeriesScope


class BackfillStatus(str, Enum):
    """Outcome of reconciling one rule."""

    CREATED = "created"  # Missing instances were inserted
    UP_TO_DATE = "up_to_date"  # Nothing was missing
    RULE_INACTIVE = "rule_inactive"  # Rule ended or terminated
    RULE_MISSING = "rule_missing"  # Rule vanished (concurrent delete)


@dataclass(frozen=True)
class BackfillResult:
    rule_id: UUID
    status: BackfillStatus
    instances_created: int = 0
    created_dates: tuple[date, ...] = ()


@dataclass(frozen=True)
class RuleCreationResult:
    rule: RecurringRule
    instances_created: int


@dataclass(frozen=True)
class SweepError:
    """A single rule that could not be reconciled during a sweep."""

    rule_id: UUID
    error_code: str
    error_message: str


@dataclass(frozen=True)
class SweepResult:
    """Summary of one ``generate_missing_instances`` run."""

    rules_processed: int
    instances_created: int
    errors: tuple[SweepError, ...] = ()
    cancelled: bool = False

    @property
    def error_count(self) -> int:
        return len(self.errors)


class MutationStatus(str, Enum):
    """Outcome of a scoped edit or delete."""

    APPLIED = "applied"  # Series logic ran
    PASSTHROUGH = "passthrough"  # Plain one-off record, single-record op
    NOT_FOUND = "not_found"  # Target id is neither a rule nor an instance


@dataclass(frozen=True)
class SeriesMutationResult:
    status: MutationStatus
    target_id: UUID
    scope: SeriesScope
    rule_id: UUID | None = None
    instances_deleted: int = 0
    instances_updated: int = 0
    instances_created: int = 0
    rule_deleted: bool = False
    rule_end_date: date | None = None

    @property
    def is_success(self) -> bool:
        return self.status != MutationStatus.NOT_FOUND

    @classmethod
    def not_found(cls, target_id: UUID, scope: SeriesScope) -> SeriesMutationResult:
        return cls(status=MutationStatus.NOT_FOUND, target_id=target_id, scope=scope)


@dataclass(frozen=True)
class CascadeResult:
    """Counts produced by one lifecycle cascade run."""

    owner: OwnerRef
    termination_date: date
    reminders_completed: int = 0
    rules_stopped: int = 0
    instances_deleted: int = 0
    owners_marked: int = 0
    attempts: int = 1
    steps: tuple[str, ...] = field(default_factory=tuple)
