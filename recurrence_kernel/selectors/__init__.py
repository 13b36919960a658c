"""Selectors for the recurrence kernel (read side)."""

from recurrence_kernel.selectors.instance_selector import (
    InstanceSelector,
    ReminderSelector,
)
from recurrence_kernel.selectors.lease_selector import LeaseSelector
from recurrence_kernel.selectors.rule_selector import RecurringRuleSelector

__all__ = [
    "InstanceSelector",
    "LeaseSelector",
    "RecurringRuleSelector",
    "ReminderSelector",
]
