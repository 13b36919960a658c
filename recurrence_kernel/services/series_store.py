"""
SeriesStore -- flush-only persistence for rules and instances.

Contract:
    Inserts, row-locks, updates and deletes ``recurring_rules`` and
    ``series_instances`` rows inside the caller's transaction.  Every
    series-level service (backfill, mutator, cascade) writes through here.

Architecture: recurrence_kernel/services.  Imports models and domain only.

Invariants enforced:
    - ``lock_rule`` issues ``SELECT ... FOR UPDATE`` and refreshes the row,
      so the caller sees the committed state after any concurrent writer.
    - Deletes of instances can spare settled rows (paid / completed).
    - flush() only; the caller commits.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from recurrence_kernel.domain.reconciler import build_instance_values
from recurrence_kernel.domain.recurring import SETTLED_STATUSES, Instance, RecurringRule
from recurrence_kernel.models.recurring import InstanceModel, RecurringRuleModel
from recurrence_kernel.services.base import BaseService


class SeriesStore(BaseService[RecurringRuleModel]):
    """Rule and instance writes for one session."""

    def __init__(self, session: Session, actor_id: UUID):
        super().__init__(session)
        self._actor_id = actor_id

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def lock_rule(self, rule_id: UUID) -> RecurringRuleModel | None:
        """Row-lock and reload a rule; None if it no longer exists."""
        return self.session.execute(
            select(RecurringRuleModel)
            .where(RecurringRuleModel.id == rule_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def add_rule(self, rule: RecurringRule) -> RecurringRuleModel:
        model = RecurringRuleModel.from_dto(rule, created_by_id=self._actor_id)
        self.session.add(model)
        self.session.flush()
        return model

    def touch(self, model: RecurringRuleModel | InstanceModel) -> None:
        model.updated_by_id = self._actor_id

    def delete_rule(self, model: RecurringRuleModel) -> int:
        """Hard-delete a rule and every instance that references it."""
        deleted = self.delete_instances(model.id)
        self.session.delete(model)
        self.session.flush()
        return deleted

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def add_instances(self, rule: RecurringRule, dates: Iterable[date]) -> int:
        values = build_instance_values(rule, dates)
        for row in values:
            self.session.add(InstanceModel(created_by_id=self._actor_id, **row))
        self.session.flush()
        return len(values)

    def add_entry(self, instance: Instance) -> InstanceModel:
        model = InstanceModel.from_dto(instance, created_by_id=self._actor_id)
        self.session.add(model)
        self.session.flush()
        return model

    def get_instance(self, instance_id: UUID) -> InstanceModel | None:
        return self.session.get(InstanceModel, instance_id)

    def instances_of(
        self,
        parent_id: UUID,
        from_date: date | None = None,
    ) -> list[InstanceModel]:
        stmt = select(InstanceModel).where(
            InstanceModel.parent_recurring_id == parent_id,
        )
        if from_date is not None:
            stmt = stmt.where(InstanceModel.occurrence_date >= from_date)
        return list(
            self.session.execute(
                stmt.order_by(InstanceModel.occurrence_date)
            ).scalars()
        )

    def delete_instances(
        self,
        parent_id: UUID,
        from_date: date | None = None,
        keep_settled: bool = False,
        keep_dates: frozenset[date] = frozenset(),
    ) -> int:
        """Delete a rule's instances, optionally only from ``from_date``."""
        deleted = 0
        for model in self.instances_of(parent_id, from_date):
            if keep_settled and model.status in SETTLED_STATUSES:
                continue
            if model.occurrence_date in keep_dates:
                continue
            self.session.delete(model)
            deleted += 1
        self.session.flush()
        return deleted

    def delete_instance(self, model: InstanceModel) -> None:
        self.session.delete(model)
        self.session.flush()

    def update_instances(
        self,
        models: Iterable[InstanceModel],
        changes: dict[str, Any],
    ) -> int:
        updated = 0
        for model in models:
            for name, value in changes.items():
                setattr(model, name, value)
            self.touch(model)
            updated += 1
        self.session.flush()
        return updated
