"""
recurrence_batch -- Batch processing and job scheduling for the recurrence engine.

Provides a batch execution engine with per-item SAVEPOINT isolation,
progress tracking, structured logging of every lifecycle event, and an
in-process cron-like scheduler.  Runs the nightly recurring sweep
(``recurring.generate_missing_instances``) and the daily lease-end
reminders (``leases.end_reminders``).

Architecture:
    recurrence_batch/ is a top-level package.  Nothing in recurrence_kernel
    imports from it.
"""
