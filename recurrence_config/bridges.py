"""
Config -> Kernel bridges.

Functions that convert ``EngineSettings`` into kernel inputs.  They live in
recurrence_config (the producer) because the kernel must never import it.

Usage:
    from recurrence_config.bridges import series_service_options

    settings = get_active_config()
    service = RecurringSeriesService(session_factory, **series_service_options(settings))
"""

from __future__ import annotations

from typing import Any

from recurrence_config.schema import EngineSettings
from recurrence_kernel.domain.expander import ExpansionLimits
from recurrence_kernel.services.rule_locks import RuleLockRegistry


def expansion_limits_from_settings(settings: EngineSettings) -> ExpansionLimits:
    return ExpansionLimits(
        max_instances=settings.max_instances,
        horizon_years=settings.horizon_years,
        max_expansion_steps=settings.max_expansion_steps,
    )


def build_lock_registry(settings: EngineSettings) -> RuleLockRegistry:
    return RuleLockRegistry(timeout_seconds=settings.lock_timeout_seconds)


def series_service_options(
    settings: EngineSettings,
    lock_registry: RuleLockRegistry | None = None,
) -> dict[str, Any]:
    """Keyword arguments for ``RecurringSeriesService`` (besides session/clock)."""
    return {
        "limits": expansion_limits_from_settings(settings),
        "sweep_workers": settings.sweep_workers,
        "cascade_max_attempts": settings.cascade_max_attempts,
        "lease_end_reminder_days": settings.lease_end_reminder_days,
        "lock_registry": lock_registry or build_lock_registry(settings),
    }
