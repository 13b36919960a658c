"""
RecurringSeriesService -- the outbound facade of the recurrence kernel.

Responsibility:
    Single entry point for callers (API handlers, batch tasks, scripts).
    Builds the flush-only services on a fresh session per unit of work and
    owns every transaction boundary: commit on success, rollback on any
    exception.

Architecture position:
    Kernel > Services -- imperative shell.  The only class in the kernel
    that calls ``session.commit()`` or ``session.rollback()``.

Transaction model:
    - ``create_rule`` / mutations / lease operations: one transaction each.
    - ``generate_missing_instances``: one transaction per rule, so a bad
      rule never rolls back the work done for the others.
    - ``cascade_terminate``: one transaction for the whole step list,
      retried from step 1 on storage failure.

Concurrency:
    Every unit of work that touches a series holds that rule's lock from
    the ``RuleLockRegistry`` for the duration of its transaction.  Cascades
    hold every affected rule lock, acquired in sorted order.  The sweep
    fans rules out over a ``ThreadPoolExecutor`` and can be cancelled
    between rules with ``cancel_sweep()``.

Failure modes:
    - InvalidIntervalError / InvalidFrequencyError / InvalidSeriesBoundaryError
      from ``create_rule`` on bad input (nothing is persisted).
    - RuleNotFoundError / LeaseNotFoundError from direct lookups.
    - CascadeRetryExhaustedError when every cascade attempt failed.
    - Mutations on an unknown id return a NOT_FOUND result (no exception).
    - Sweeps never raise for a single rule; failures become SweepError
      entries on the SweepResult.

Usage:
    service = RecurringSeriesService(get_session_factory(), clock=SystemClock())
    created = service.create_rule(
        kind=RuleKind.EXPENSE,
        org_id="org-1",
        owner=OwnerRef(OwnerScopeType.PROPERTY, "prop-9"),
        anchor_date=date(2025, 1, 15),
        frequency_unit="months",
        title="Insurance",
        amount=Decimal("120.00"),
    )
    service.delete_recurring(created.rule.id, SeriesScope.FUTURE)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock, SystemClock
from recurrence_kernel.domain.expander import ExpansionLimits, SeriesExpander
from recurrence_kernel.domain.reconciler import InstanceReconciler
from recurrence_kernel.domain.recurrence import normalize_frequency, validate_interval
from recurrence_kernel.domain.recurring import (
    Instance,
    Lease,
    LeaseStatus,
    OwnerRef,
    OwnerScopeType,
    RecurringRule,
    RuleKind,
    SeriesPatch,
    SeriesScope,
    default_instance_status,
)
from recurrence_kernel.domain.results import (
    BackfillResult,
    CascadeResult,
    RuleCreationResult,
    SeriesMutationResult,
    SweepError,
    SweepResult,
)
from recurrence_kernel.exceptions import (
    CascadeRetryExhaustedError,
    InvalidSeriesBoundaryError,
    LeaseNotFoundError,
    MalformedRuleError,
    RecurrenceKernelError,
    RuleLockTimeoutError,
    RuleNotFoundError,
)
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.selectors.instance_selector import (
    InstanceSelector,
    ReminderSelector,
)
from recurrence_kernel.selectors.lease_selector import LeaseSelector
from recurrence_kernel.selectors.rule_selector import RecurringRuleSelector
from recurrence_kernel.services.backfill import InstanceBackfill
from recurrence_kernel.services.lease_reminders import (
    DEFAULT_LEAD_DAYS,
    LeaseReminderService,
)
from recurrence_kernel.services.lease_service import LeaseService
from recurrence_kernel.services.lifecycle_cascade import LifecycleCascade
from recurrence_kernel.services.rule_locks import (
    RuleLockRegistry,
    get_rule_lock_registry,
)
from recurrence_kernel.services.series_mutator import SeriesMutator
from recurrence_kernel.services.series_store import SeriesStore

logger = get_logger("services.recurring_service")

# Actor recorded in audit columns when the caller does not supply one.
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


class _UnitOfWork:
    """The flush-only services bound to one session."""

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock,
        reconciler: InstanceReconciler,
        lease_end_reminder_days: tuple[int, ...],
    ):
        self.session = session
        self.store = SeriesStore(session, actor_id)
        self.backfill = InstanceBackfill(session, self.store, reconciler, clock)
        self.mutator = SeriesMutator(
            session, self.store, self.backfill, reconciler, clock,
        )
        self.leases = LeaseService(session, actor_id)
        self.cascade = LifecycleCascade(
            session, self.store, self.mutator, self.leases, clock,
        )
        self.lease_reminders = LeaseReminderService(
            session, self.store, clock, lease_end_reminder_days,
        )


@dataclass(frozen=True)
class _RuleOutcome:
    processed: bool = True
    instances_created: int = 0
    error: SweepError | None = None


class RecurringSeriesService:
    """Facade over rules, instances, sweeps, scoped mutations and cascades."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        limits: ExpansionLimits | None = None,
        sweep_workers: int = 4,
        cascade_max_attempts: int = 3,
        lease_end_reminder_days: Iterable[int] = DEFAULT_LEAD_DAYS,
        lock_registry: RuleLockRegistry | None = None,
        actor_id: UUID | None = None,
    ):
        if sweep_workers < 1:
            raise ValueError(f"sweep_workers must be >= 1, got {sweep_workers}")
        if cascade_max_attempts < 1:
            raise ValueError(
                f"cascade_max_attempts must be >= 1, got {cascade_max_attempts}"
            )
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._reconciler = InstanceReconciler(expander=SeriesExpander(limits))
        self._sweep_workers = sweep_workers
        self._cascade_max_attempts = cascade_max_attempts
        self._lease_end_reminder_days = tuple(lease_end_reminder_days)
        self._locks = lock_registry or get_rule_lock_registry()
        self._actor_id = actor_id or SYSTEM_ACTOR_ID
        self._stop = threading.Event()

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def limits(self) -> ExpansionLimits:
        return self._reconciler.limits

    # -------------------------------------------------------------------------
    # Session handling
    # -------------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[_UnitOfWork]:
        session = self._session_factory()
        try:
            yield _UnitOfWork(
                session,
                self._actor_id,
                self._clock,
                self._reconciler,
                self._lease_end_reminder_days,
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _read_session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_rule(
        self,
        kind: RuleKind | str,
        org_id: str,
        owner: OwnerRef,
        anchor_date: date,
        frequency_unit: str,
        interval: int = 1,
        explicit_end_date: date | None = None,
        title: str = "",
        amount: Decimal | None = None,
        category: str | None = None,
        notes: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> RuleCreationResult:
        """Validate, persist and eagerly backfill a new recurring rule.

        Legacy frequency synonyms (``monthly``, ``quarterly``, ...) are
        normalized to a canonical unit and interval before they are stored.
        """
        validate_interval(interval)
        canonical, step = normalize_frequency(frequency_unit, interval)
        if explicit_end_date is not None and explicit_end_date < anchor_date:
            raise InvalidSeriesBoundaryError(anchor_date, explicit_end_date)

        rule = RecurringRule(
            id=uuid4(),
            kind=RuleKind(kind),
            org_id=org_id,
            owner=owner,
            anchor_date=anchor_date,
            frequency_unit=canonical.value,
            interval=step,
            explicit_end_date=explicit_end_date,
            title=title,
            amount=amount,
            category=category,
            notes=notes,
            payload=dict(payload or {}),
        )

        with LogContext.bind(rule_id=str(rule.id), owner_ref=str(owner)):
            with self._locks.hold(rule.id), self._transaction() as uow:
                model = uow.store.add_rule(rule)
                backfill = uow.backfill.backfill_locked(model)
                stored = model.to_dto()

            logger.info(
                "rule_created",
                extra={
                    "kind": stored.kind.value,
                    "anchor_date": stored.anchor_date,
                    "frequency_unit": stored.frequency_unit,
                    "interval": stored.interval,
                    "instances_created": backfill.instances_created,
                },
            )
        return RuleCreationResult(
            rule=stored, instances_created=backfill.instances_created,
        )

    def create_entry(
        self,
        kind: RuleKind | str,
        org_id: str,
        owner: OwnerRef,
        occurrence_date: date,
        title: str = "",
        amount: Decimal | None = None,
        category: str | None = None,
        notes: str | None = None,
        payload: dict[str, Any] | None = None,
        status: str | None = None,
    ) -> Instance:
        """Record a plain one-off transaction or reminder (no series)."""
        kind = RuleKind(kind)
        entry = Instance(
            id=uuid4(),
            parent_recurring_id=None,
            kind=kind,
            org_id=org_id,
            owner=owner,
            occurrence_date=occurrence_date,
            status=str(getattr(status, "value", status) or default_instance_status(kind)),
            title=title,
            amount=amount,
            category=category,
            notes=notes,
            payload=dict(payload or {}),
        )
        with self._transaction() as uow:
            stored = uow.store.add_entry(entry).to_dto()
        logger.info(
            "entry_created",
            extra={"instance_id": str(stored.id), "kind": kind.value},
        )
        return stored

    def create_lease(
        self,
        org_id: str,
        start_date: date,
        end_date: date,
        unit_id: str | None = None,
        tenant_group_id: str | None = None,
        rent: Decimal | None = None,
        status: LeaseStatus | str = LeaseStatus.ACTIVE,
    ) -> Lease:
        lease = Lease(
            id=uuid4(),
            org_id=org_id,
            start_date=start_date,
            end_date=end_date,
            status=LeaseStatus(status).value,
            unit_id=unit_id,
            tenant_group_id=tenant_group_id,
            rent=rent,
        )
        with self._transaction() as uow:
            return uow.leases.add_lease(lease)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_rule(self, rule_id: UUID) -> RecurringRule:
        with self._read_session() as session:
            rule = RecurringRuleSelector(session).get(rule_id)
        if rule is None:
            raise RuleNotFoundError(str(rule_id))
        return rule

    def get_lease(self, lease_id: UUID) -> Lease:
        with self._read_session() as session:
            lease = LeaseSelector(session).get(lease_id)
        if lease is None:
            raise LeaseNotFoundError(str(lease_id))
        return lease

    def list_instances(
        self,
        rule_id: UUID,
        from_date: date | None = None,
    ) -> list[Instance]:
        with self._read_session() as session:
            return InstanceSelector(session).list_by_parent(rule_id, from_date)

    def list_pending_reminders(self, owner: OwnerRef) -> list[Instance]:
        with self._read_session() as session:
            return ReminderSelector(session).list_pending_by_scope(
                owner.scope_type, owner.scope_id,
            )

    # -------------------------------------------------------------------------
    # Backfill and sweep
    # -------------------------------------------------------------------------

    def backfill_rule(self, rule_id: UUID) -> BackfillResult:
        with self._locks.hold(rule_id), self._transaction() as uow:
            return uow.backfill.backfill_rule(rule_id)

    def cancel_sweep(self) -> None:
        """Stop a running sweep before its next rule."""
        self._stop.set()

    def generate_missing_instances(self, org_id: str | None = None) -> SweepResult:
        """Reconcile every active rule, one transaction per rule."""
        self._stop.clear()
        with self._read_session() as session:
            rule_ids = RecurringRuleSelector(session).list_active_ids(org_id=org_id)

        logger.info(
            "sweep_started",
            extra={"rule_count": len(rule_ids), "workers": self._sweep_workers},
        )

        if self._sweep_workers == 1 or len(rule_ids) <= 1:
            outcomes = [self._sweep_rule(rule_id) for rule_id in rule_ids]
        else:
            with ThreadPoolExecutor(
                max_workers=self._sweep_workers,
                thread_name_prefix="recurring-sweep",
            ) as pool:
                outcomes = list(pool.map(self._sweep_rule, rule_ids))

        processed = [o for o in outcomes if o.processed]
        result = SweepResult(
            rules_processed=len(processed),
            instances_created=sum(o.instances_created for o in processed),
            errors=tuple(o.error for o in processed if o.error is not None),
            cancelled=len(processed) < len(rule_ids),
        )
        logger.info(
            "sweep_completed",
            extra={
                "rules_processed": result.rules_processed,
                "instances_created": result.instances_created,
                "error_count": result.error_count,
                "cancelled": result.cancelled,
            },
        )
        return result

    def _sweep_rule(self, rule_id: UUID) -> _RuleOutcome:
        if self._stop.is_set():
            return _RuleOutcome(processed=False)

        with LogContext.bind(rule_id=str(rule_id)):
            try:
                with self._locks.hold(rule_id), self._transaction() as uow:
                    result = uow.backfill.backfill_rule(rule_id)
                return _RuleOutcome(instances_created=result.instances_created)
            except MalformedRuleError as exc:
                logger.warning(
                    "rule_skipped_malformed",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                return _RuleOutcome(error=SweepError(rule_id, exc.code, str(exc)))
            except IntegrityError as exc:
                # Another writer inserted the same occurrence first.
                logger.warning(
                    "rule_backfill_conflict",
                    extra={"error": str(exc.orig)},
                )
                return _RuleOutcome()
            except RecurrenceKernelError as exc:
                logger.warning(
                    "rule_sweep_failed",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                return _RuleOutcome(error=SweepError(rule_id, exc.code, str(exc)))
            except Exception as exc:
                logger.exception("rule_sweep_error")
                return _RuleOutcome(
                    error=SweepError(rule_id, type(exc).__name__, str(exc)),
                )

    # -------------------------------------------------------------------------
    # Scoped mutations
    # -------------------------------------------------------------------------

    def _resolve(self, target_id: UUID) -> tuple[RecurringRule | Instance | None, UUID | None]:
        """Find ``target_id`` as a rule first, then as an instance."""
        with self._read_session() as session:
            rule = RecurringRuleSelector(session).get(target_id)
            if rule is not None:
                return rule, rule.id
            instance = InstanceSelector(session).get(target_id)
            if instance is not None:
                return instance, instance.parent_recurring_id
        return None, None

    def delete_recurring(
        self,
        target_id: UUID,
        scope: SeriesScope | str,
    ) -> SeriesMutationResult:
        scope = SeriesScope(scope)
        target, rule_id = self._resolve(target_id)
        if target is None:
            logger.info("mutation_target_not_found", extra={"target_id": str(target_id)})
            return SeriesMutationResult.not_found(target_id, scope)

        with LogContext.bind(rule_id=str(rule_id) if rule_id else None):
            with self._locks.hold(rule_id), self._transaction() as uow:
                return uow.mutator.delete_series(target, scope)

    def update_recurring(
        self,
        target_id: UUID,
        patch: SeriesPatch,
        scope: SeriesScope | str,
    ) -> SeriesMutationResult:
        scope = SeriesScope(scope)
        target, rule_id = self._resolve(target_id)
        if target is None:
            logger.info("mutation_target_not_found", extra={"target_id": str(target_id)})
            return SeriesMutationResult.not_found(target_id, scope)

        with LogContext.bind(rule_id=str(rule_id) if rule_id else None):
            with self._locks.hold(rule_id), self._transaction() as uow:
                return uow.mutator.update_series(target, patch, scope)

    # -------------------------------------------------------------------------
    # Lifecycle cascades
    # -------------------------------------------------------------------------

    def cascade_terminate(
        self,
        owner: OwnerRef,
        termination_date: date,
    ) -> CascadeResult:
        """Run the termination cascade for ``owner`` in one transaction.

        Storage failures and lock timeouts roll the transaction back and the
        whole step list is retried, up to ``cascade_max_attempts`` times.
        """
        last_error: Exception | None = None
        with LogContext.bind(owner_ref=str(owner)):
            for attempt in range(1, self._cascade_max_attempts + 1):
                try:
                    with self._read_session() as session:
                        rule_ids = RecurringRuleSelector(session).list_active_ids(
                            owner=owner,
                        )
                    with self._locks.hold(*rule_ids), self._transaction() as uow:
                        result = uow.cascade.on_entity_terminated(owner, termination_date)
                    return replace(result, attempts=attempt)
                except (SQLAlchemyError, RuleLockTimeoutError) as exc:
                    last_error = exc
                    logger.warning(
                        "cascade_attempt_failed",
                        extra={
                            "attempt": attempt,
                            "max_attempts": self._cascade_max_attempts,
                            "error": str(exc),
                        },
                    )

            logger.error(
                "cascade_retry_exhausted",
                extra={"attempts": self._cascade_max_attempts},
            )
        raise CascadeRetryExhaustedError(
            str(owner), self._cascade_max_attempts, str(last_error),
        )

    def terminate_lease(self, lease_id: UUID, termination_date: date) -> CascadeResult:
        self.get_lease(lease_id)
        return self.cascade_terminate(
            OwnerRef(OwnerScopeType.LEASE, str(lease_id)), termination_date,
        )

    def terminate_leases_by_tenant_group(
        self,
        tenant_group_id: str,
        termination_date: date,
    ) -> list[CascadeResult]:
        with self._read_session() as session:
            leases = LeaseSelector(session).list_active_by_tenant_group(tenant_group_id)
        return [self.terminate_lease(lease.id, termination_date) for lease in leases]

    def archive_tenant_group(
        self,
        tenant_group_id: str,
        termination_date: date | None = None,
    ) -> list[CascadeResult]:
        """Terminate the group's active leases, then the group's own series."""
        termination_date = termination_date or self._clock.today()
        results = self.terminate_leases_by_tenant_group(tenant_group_id, termination_date)
        results.append(
            self.cascade_terminate(
                OwnerRef(OwnerScopeType.TENANT_GROUP, tenant_group_id),
                termination_date,
            )
        )
        logger.info(
            "tenant_group_archived",
            extra={
                "tenant_group_id": tenant_group_id,
                "leases_terminated": len(results) - 1,
            },
        )
        return results

    # -------------------------------------------------------------------------
    # Lease-end reminders
    # -------------------------------------------------------------------------

    def create_lease_end_reminders(self) -> int:
        with self._transaction() as uow:
            return uow.lease_reminders.create_lease_end_reminders()
