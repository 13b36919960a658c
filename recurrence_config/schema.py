"""
EngineSettings schema.

The typed, frozen form of the engine's YAML settings.  The loader parses
YAML into this type; bridges translate it into kernel value objects.  The
kernel never imports this package.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for expansion, sweeps, cascades and scheduling."""

    # Expansion
    max_instances: int = 24
    horizon_years: int = 2
    max_expansion_steps: int = 10_000

    # Sweep
    sweep_workers: int = 4
    sweep_cron: str = "0 2 * * *"

    # Lease-end reminders
    lease_reminder_cron: str = "0 9 * * *"
    lease_end_reminder_days: tuple[int, ...] = (120, 90, 60, 30)

    # Cascades and locking
    cascade_max_attempts: int = 3
    lock_timeout_seconds: float = 30.0

    # Scheduler
    scheduler_tick_seconds: float = 60.0

    def __post_init__(self) -> None:
        for name in (
            "max_instances",
            "horizon_years",
            "max_expansion_steps",
            "sweep_workers",
            "cascade_max_attempts",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.max_expansion_steps < self.max_instances:
            raise ValueError(
                "max_expansion_steps must be >= max_instances "
                f"({self.max_expansion_steps} < {self.max_instances})"
            )
        if not self.lease_end_reminder_days:
            raise ValueError("lease_end_reminder_days must not be empty")
        for days in self.lease_end_reminder_days:
            if isinstance(days, bool) or not isinstance(days, int) or days < 1:
                raise ValueError(f"lease_end_reminder_days entries must be positive, got {days!r}")
        if self.lock_timeout_seconds <= 0:
            raise ValueError(f"lock_timeout_seconds must be > 0, got {self.lock_timeout_seconds}")
        if self.scheduler_tick_seconds <= 0:
            raise ValueError(f"scheduler_tick_seconds must be > 0, got {self.scheduler_tick_seconds}")
        for name in ("sweep_cron", "lease_reminder_cron"):
            if len(getattr(self, name).split()) != 5:
                raise ValueError(f"{name} must have 5 fields, got {getattr(self, name)!r}")
