"""
Module: recurrence_kernel.models.recurring
Responsibility:
    SQLAlchemy ORM persistence for recurring rules and the instances
    materialized from them.  Maps the frozen dataclasses in
    ``recurrence_kernel.domain.recurring`` to two tables joined by
    ``series_instances.parent_recurring_id``.

Architecture position:
    Kernel > Models.  Imports from db/base.py and domain/ value objects only.

Invariants enforced:
    - UNIQUE(parent_recurring_id, occurrence_date): at most one instance per
      rule per calendar date.  This constraint is the last line of defence
      when a sweep races another process.
    - ``recurring_rules`` has no parent column; only instances reference a
      rule.  One-off transactions and reminders are instances with a NULL
      parent.
    - Enum fields stored as String(50); amounts as Numeric(19, 4).

Failure modes:
    - IntegrityError on duplicate (parent_recurring_id, occurrence_date).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from recurrence_kernel.db.base import TrackedBase, UUIDString
from recurrence_kernel.domain.recurring import (
    Instance,
    OwnerRef,
    OwnerScopeType,
    RecurringRule,
    RuleKind,
    RuleStatus,
)


# =============================================================================
# Recurring rule
# =============================================================================


class RecurringRuleModel(TrackedBase):
    """
    A user-declared recurring expense, revenue line, or reminder.

    Guarantees:
        - ``anchor_date`` is the first occurrence, represented by this row.
        - ``frequency_unit`` holds a canonical unit for rows written by the
          engine; legacy synonyms from older rows are accepted on read.
        - ``status`` is one of: active, ended, terminated.
    """

    __tablename__ = "recurring_rules"

    __table_args__ = (
        Index("idx_rule_owner", "owner_scope_type", "owner_scope_id"),
        Index("idx_rule_status", "status"),
        Index("idx_rule_org", "org_id"),
    )

    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    org_id: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_scope_type: Mapped[str] = mapped_column(String(50), nullable=False)
    owner_scope_id: Mapped[str] = mapped_column(String(100), nullable=False)
    anchor_date: Mapped[date] = mapped_column(Date, nullable=False)
    frequency_unit: Mapped[str] = mapped_column(String(50), nullable=False)
    interval: Mapped[int] = mapped_column(
        "interval_count", Integer, nullable=False, default=1,
    )
    explicit_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=RuleStatus.ACTIVE.value,
    )
    terminated_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self) -> RecurringRule:
        return RecurringRule(
            id=self.id,
            kind=RuleKind(self.kind),
            org_id=self.org_id,
            owner=OwnerRef(OwnerScopeType(self.owner_scope_type), self.owner_scope_id),
            anchor_date=self.anchor_date,
            frequency_unit=self.frequency_unit,
            interval=self.interval,
            explicit_end_date=self.explicit_end_date,
            title=self.title,
            amount=self.amount,
            category=self.category,
            notes=self.notes,
            payload=dict(self.payload or {}),
            status=RuleStatus(self.status),
            terminated_on=self.terminated_on,
        )

    @classmethod
    def from_dto(cls, dto: RecurringRule, created_by_id: UUID) -> RecurringRuleModel:
        return cls(
            id=dto.id,
            kind=dto.kind.value,
            org_id=dto.org_id,
            owner_scope_type=dto.owner.scope_type.value,
            owner_scope_id=dto.owner.scope_id,
            anchor_date=dto.anchor_date,
            frequency_unit=str(getattr(dto.frequency_unit, "value", dto.frequency_unit)),
            interval=dto.interval,
            explicit_end_date=dto.explicit_end_date,
            title=dto.title,
            amount=dto.amount,
            category=dto.category,
            notes=dto.notes,
            payload=dict(dto.payload) or None,
            status=dto.status.value,
            terminated_on=dto.terminated_on,
            created_by_id=created_by_id,
            updated_by_id=None,
        )


# =============================================================================
# Instance
# =============================================================================


class InstanceModel(TrackedBase):
    """
    A concrete transaction or reminder record.

    Guarantees:
        - ``parent_recurring_id`` references recurring_rules.id, or is NULL
          for one-off records.
        - ``status`` is a payment status (expense/revenue) or a reminder
          status (reminder).
        - ``lead_days`` is set on lease-end reminders (days before lease end).
    """

    __tablename__ = "series_instances"

    __table_args__ = (
        UniqueConstraint(
            "parent_recurring_id", "occurrence_date",
            name="uq_instance_parent_date",
        ),
        Index("idx_instance_parent", "parent_recurring_id"),
        Index("idx_instance_owner", "owner_scope_type", "owner_scope_id"),
        Index("idx_instance_kind_status", "kind", "status"),
        Index("idx_instance_date", "occurrence_date"),
    )

    parent_recurring_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("recurring_rules.id", ondelete="CASCADE"),
        nullable=True,
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    org_id: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_scope_type: Mapped[str] = mapped_column(String(50), nullable=False)
    owner_scope_id: Mapped[str] = mapped_column(String(100), nullable=False)
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    lead_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def to_dto(self) -> Instance:
        return Instance(
            id=self.id,
            parent_recurring_id=self.parent_recurring_id,
            kind=RuleKind(self.kind),
            org_id=self.org_id,
            owner=OwnerRef(OwnerScopeType(self.owner_scope_type), self.owner_scope_id),
            occurrence_date=self.occurrence_date,
            status=self.status,
            title=self.title,
            amount=self.amount,
            category=self.category,
            notes=self.notes,
            payload=dict(self.payload or {}),
            completed_at=self.completed_at,
            lead_days=self.lead_days,
        )

    @classmethod
    def from_dto(cls, dto: Instance, created_by_id: UUID) -> InstanceModel:
        return cls(
            id=dto.id,
            parent_recurring_id=dto.parent_recurring_id,
            kind=dto.kind.value,
            org_id=dto.org_id,
            owner_scope_type=dto.owner.scope_type.value,
            owner_scope_id=dto.owner.scope_id,
            occurrence_date=dto.occurrence_date,
            status=dto.status,
            title=dto.title,
            amount=dto.amount,
            category=dto.category,
            notes=dto.notes,
            payload=dict(dto.payload) or None,
            completed_at=dto.completed_at,
            lead_days=dto.lead_days,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
