"""
Typed Exception Hierarchy for the Recurrence Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RecurrenceKernelError:

    RecurrenceKernelError (base)
    |
    +-- RuleError
    |   +-- RuleNotFoundError
    |   +-- InstanceNotFoundError
    |   +-- InvalidSeriesBoundaryError
    |   +-- InvalidSeriesPatchError
    |   +-- MalformedRuleError
    |       +-- InvalidFrequencyError
    |       +-- InvalidIntervalError
    |       +-- NonAdvancingRecurrenceError
    |       +-- ExpansionLimitExceededError
    |
    +-- OwnerError
    |   +-- LeaseNotFoundError
    |
    +-- ConcurrencyError
    |   +-- RuleLockTimeoutError
    |
    +-- CascadeError
    |   +-- CascadeRetryExhaustedError
    |
    +-- BatchError
    |   +-- BatchJobNotFoundError
    |   +-- BatchAlreadyRunningError
    |   +-- BatchIdempotencyError
    |   +-- TaskNotRegisteredError
    |
    +-- ScheduleError
        +-- InvalidCronExpressionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Rule            | RULE_NOT_FOUND              | Rule ID doesn't exist
                | INSTANCE_NOT_FOUND          | Instance ID doesn't exist
                | INVALID_SERIES_BOUNDARY     | End date before anchor date
                | INVALID_SERIES_PATCH        | Patch not allowed for this scope/target
                | INVALID_FREQUENCY           | Unknown frequency unit
                | INVALID_INTERVAL            | Interval < 1 or not an integer
                | NON_ADVANCING_RECURRENCE    | Next occurrence does not move forward
----------------|-----------------------------|-----------------------------------------
Owner           | LEASE_NOT_FOUND             | Lease ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Concurrency     | RULE_LOCK_TIMEOUT           | Per-rule lock not acquired in time
----------------|-----------------------------|-----------------------------------------
Cascade         | CASCADE_RETRY_EXHAUSTED     | Cascade failed on every attempt
----------------|-----------------------------|-----------------------------------------
Batch           | BATCH_JOB_NOT_FOUND         | Job ID doesn't exist
                | BATCH_ALREADY_RUNNING       | Job is not PENDING
                | BATCH_IDEMPOTENCY_CONFLICT  | Idempotency key already used
                | TASK_NOT_REGISTERED         | Unknown task_type
----------------|-----------------------------|-----------------------------------------
Schedule        | INVALID_CRON_EXPRESSION     | Cron string cannot be parsed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. SWEEPS SKIP MALFORMED RULES (never abort the whole sweep):

    try:
        backfill.backfill_rule(rule_id)
    except MalformedRuleError as e:
        logger.warning("rule_skipped_malformed", extra={"rule_id": e.rule_id})

2. CASCADES ARE RETRIED IN FULL, NEVER RESUMED:

    except CascadeRetryExhaustedError as e:
        alert(owner=e.owner_ref, attempts=e.attempts)

3. NOT-FOUND ON DIRECT MUTATION IS A RESULT, NOT AN EXCEPTION:

    result = service.delete_recurring(target_id, SeriesScope.ALL)
    if result.status == MutationStatus.NOT_FOUND:
        ...
"""

from __future__ import annotations

from datetime import date
from typing import Any


class RecurrenceKernelError(Exception):
    """
    Base exception for all recurrence kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "RECURRENCE_KERNEL_ERROR"


# Rule-related exceptions


class RuleError(RecurrenceKernelError):
    """Base exception for recurring rule errors."""

    code: str = "RULE_ERROR"


class RuleNotFoundError(RuleError):
    """Recurring rule with given ID was not found."""

    code: str = "RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Recurring rule not found: {rule_id}")


class InstanceNotFoundError(RuleError):
    """Instance with given ID was not found."""

    code: str = "INSTANCE_NOT_FOUND"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Instance not found: {instance_id}")


class InvalidSeriesBoundaryError(RuleError):
    """Explicit end date precedes the anchor date."""

    code: str = "INVALID_SERIES_BOUNDARY"

    def __init__(self, anchor_date: date, explicit_end_date: date):
        self.anchor_date = anchor_date
        self.explicit_end_date = explicit_end_date
        super().__init__(
            f"Series end date {explicit_end_date} is before anchor {anchor_date}"
        )


class InvalidSeriesPatchError(RuleError):
    """Patch cannot be applied to the requested target and scope."""

    code: str = "INVALID_SERIES_PATCH"

    def __init__(self, target_id: str, reason: str):
        self.target_id = target_id
        self.reason = reason
        super().__init__(f"Invalid series patch for {target_id}: {reason}")


class MalformedRuleError(RuleError):
    """A stored or submitted rule cannot be expanded."""

    code: str = "MALFORMED_RULE"

    def __init__(self, message: str, rule_id: str | None = None):
        self.rule_id = rule_id
        super().__init__(message)


class InvalidFrequencyError(MalformedRuleError):
    """Frequency unit is neither canonical nor a known legacy synonym."""

    code: str = "INVALID_FREQUENCY"

    def __init__(self, frequency_unit: Any, rule_id: str | None = None):
        self.frequency_unit = frequency_unit
        super().__init__(f"Unknown frequency unit: {frequency_unit!r}", rule_id)


class InvalidIntervalError(MalformedRuleError):
    """Interval must be a positive integer."""

    code: str = "INVALID_INTERVAL"

    def __init__(self, interval: Any, rule_id: str | None = None):
        self.interval = interval
        super().__init__(
            f"Interval must be a positive integer, got {interval!r}", rule_id,
        )


class NonAdvancingRecurrenceError(MalformedRuleError):
    """Expansion produced a date that does not strictly advance."""

    code: str = "NON_ADVANCING_RECURRENCE"

    def __init__(
        self,
        previous: date,
        candidate: date,
        frequency_unit: Any,
        interval: Any,
        rule_id: str | None = None,
    ):
        self.previous = previous
        self.candidate = candidate
        self.frequency_unit = frequency_unit
        self.interval = interval
        super().__init__(
            f"Recurrence does not advance: {previous} -> {candidate} "
            f"(unit={frequency_unit}, interval={interval})",
            rule_id,
        )



class ExpansionLimitExceededError(MalformedRuleError):
    """Expansion ran out of steps before reaching the end of its window."""

    code: str = "EXPANSION_LIMIT_EXCEEDED"

    def __init__(self, max_steps: int, last_date: date, rule_id: str | None = None):
        self.max_steps = max_steps
        self.last_date = last_date
        super().__init__(
            f"Expansion stopped after {max_steps} steps at {last_date}",
            rule_id,
        )


# Owner-related exceptions


class OwnerError(RecurrenceKernelError):
    """Base exception for owning-entity errors."""

    code: str = "OWNER_ERROR"


class LeaseNotFoundError(OwnerError):
    """Lease with given ID was not found."""

    code: str = "LEASE_NOT_FOUND"

    def __init__(self, lease_id: str):
        self.lease_id = lease_id
        super().__init__(f"Lease not found: {lease_id}")


# Concurrency-related exceptions


class ConcurrencyError(RecurrenceKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class RuleLockTimeoutError(ConcurrencyError):
    """Per-rule lock could not be acquired within the timeout."""

    code: str = "RULE_LOCK_TIMEOUT"

    def __init__(self, rule_id: str, timeout_seconds: float):
        self.rule_id = rule_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for lock on rule {rule_id}"
        )


# Cascade-related exceptions


class CascadeError(RecurrenceKernelError):
    """Base exception for lifecycle cascade errors."""

    code: str = "CASCADE_ERROR"


class CascadeRetryExhaustedError(CascadeError):
    """Cascade failed on every attempt; nothing was committed."""

    code: str = "CASCADE_RETRY_EXHAUSTED"

    def __init__(self, owner_ref: str, attempts: int, last_error: str):
        self.owner_ref = owner_ref
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Cascade for {owner_ref} failed after {attempts} attempt(s): "
            f"{last_error}"
        )


# Batch-related exceptions


class BatchError(RecurrenceKernelError):
    """Base exception for batch processing errors."""

    code: str = "BATCH_ERROR"


class BatchJobNotFoundError(BatchError):
    """Batch job with given ID was not found."""

    code: str = "BATCH_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class BatchAlreadyRunningError(BatchError):
    """Batch job cannot be executed because it is not PENDING."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, job_name: str, running_job_id: str):
        self.job_name = job_name
        self.running_job_id = running_job_id
        super().__init__(
            f"Batch job '{job_name}' is already running or finished: {running_job_id}"
        )


class BatchIdempotencyError(BatchError):
    """Idempotency key has already been used by another job."""

    code: str = "BATCH_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Idempotency key '{idempotency_key}' already used by job "
            f"{existing_job_id}"
        )


class TaskNotRegisteredError(BatchError):
    """No batch task is registered for the given task_type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str, available: tuple[str, ...] = ()):
        self.task_type = task_type
        self.available = available
        message = f"No batch task registered for '{task_type}'"
        if available:
            message += f". Available: {', '.join(available)}"
        super().__init__(message)


# Schedule-related exceptions


class ScheduleError(RecurrenceKernelError):
    """Base exception for job schedule errors."""

    code: str = "SCHEDULE_ERROR"


class InvalidCronExpressionError(ScheduleError, ValueError):
    """Cron expression cannot be parsed."""

    code: str = "INVALID_CRON_EXPRESSION"

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expression}': {reason}")
