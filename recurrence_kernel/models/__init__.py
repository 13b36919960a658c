"""ORM models for the recurrence kernel."""

from recurrence_kernel.models.lease import LeaseModel
from recurrence_kernel.models.recurring import InstanceModel, RecurringRuleModel

__all__ = [
    "InstanceModel",
    "LeaseModel",
    "RecurringRuleModel",
    "import_all_models",
]


def import_all_models() -> tuple[type, ...]:
    """Return every kernel model class (importing registers their tables)."""
    return (RecurringRuleModel, InstanceModel, LeaseModel)
