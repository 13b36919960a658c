"""Read access to recurring rules."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from recurrence_kernel.domain.recurring import (
    OwnerRef,
    RecurringRule,
    RuleKind,
    RuleStatus,
)
from recurrence_kernel.models.recurring import RecurringRuleModel
from recurrence_kernel.selectors.base import BaseSelector


class RecurringRuleSelector(BaseSelector[RecurringRuleModel]):
    """Queries over ``recurring_rules``."""

    def get(self, rule_id: UUID) -> RecurringRule | None:
        model = self.session.get(RecurringRuleModel, rule_id)
        return model.to_dto() if model is not None else None

    def list_active(
        self,
        org_id: str | None = None,
        owner: OwnerRef | None = None,
        kind: RuleKind | None = None,
    ) -> list[RecurringRule]:
        """Active rules, optionally filtered by organization, owner and kind."""
        stmt = self._active_stmt(org_id, owner, kind).order_by(
            RecurringRuleModel.anchor_date, RecurringRuleModel.id,
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def list_active_ids(
        self,
        org_id: str | None = None,
        owner: OwnerRef | None = None,
    ) -> list[UUID]:
        """Ids of active rules in a stable (sorted) order."""
        stmt = self._active_stmt(org_id, owner, None).with_only_columns(
            RecurringRuleModel.id,
        )
        return sorted(self.session.execute(stmt).scalars(), key=str)

    def list_by_owner(self, owner: OwnerRef) -> list[RecurringRule]:
        """Every rule owned by ``owner``, whatever its status."""
        stmt = (
            select(RecurringRuleModel)
            .where(
                RecurringRuleModel.owner_scope_type == owner.scope_type.value,
                RecurringRuleModel.owner_scope_id == owner.scope_id,
            )
            .order_by(RecurringRuleModel.anchor_date)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    @staticmethod
    def _active_stmt(
        org_id: str | None,
        owner: OwnerRef | None,
        kind: RuleKind | None,
    ):
        stmt = select(RecurringRuleModel).where(
            RecurringRuleModel.status == RuleStatus.ACTIVE.value,
        )
        if org_id is not None:
            stmt = stmt.where(RecurringRuleModel.org_id == org_id)
        if owner is not None:
            stmt = stmt.where(
                RecurringRuleModel.owner_scope_type == owner.scope_type.value,
                RecurringRuleModel.owner_scope_id == owner.scope_id,
            )
        if kind is not None:
            stmt = stmt.where(RecurringRuleModel.kind == RuleKind(kind).value)
        return stmt
