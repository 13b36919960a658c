"""
Tests for the recurring batch tasks run through BatchExecutor.

Rules and leases are created through the service facade (which commits),
then the job runs on ``db_session``.  The session is committed before the
facade reads results back, since all sessions share one connection.
"""

from datetime import date, datetime
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import sessionmaker

from recurrence_batch.domain.types import BatchItemStatus, BatchJobStatus
from recurrence_batch.services.executor import BatchExecutor
from recurrence_batch.tasks.base import BatchItemInput, TaskRegistry
from recurrence_batch.tasks.recurring_tasks import (
    GenerateMissingInstancesTask,
    LeaseEndReminderTask,
    register_recurring_tasks,
)
from recurrence_kernel.db.base import Base
from recurrence_kernel.domain.recurring import LeaseStatus, RuleKind
from recurrence_kernel.models import import_all_models
from recurrence_kernel.models.recurring import InstanceModel, RecurringRuleModel
from recurrence_kernel.services.recurring_service import RecurringSeriesService

SWEEP = "recurring.generate_missing_instances"
REMINDERS = "leases.end_reminders"


@pytest.fixture
def executor(db_session, clock, lock_registry):
    registry = register_recurring_tasks(TaskRegistry(), clock, lock_registry=lock_registry)
    return BatchExecutor(session=db_session, task_registry=registry, clock=clock)


def _run(executor, task_type: str, parameters=None):
    actor = uuid4()
    job = executor.submit_job(
        job_name=task_type,
        task_type=task_type,
        idempotency_key=f"{task_type}-{uuid4()}",
        actor_id=actor,
        parameters=parameters,
    )
    return executor.execute_job(job.job_id, actor)


def _daily_rule(series_service, owner, org_id="org-1"):
    return series_service.create_rule(
        kind=RuleKind.REMINDER,
        org_id=org_id,
        owner=owner,
        anchor_date=date(2025, 1, 15),
        frequency_unit="days",
    ).rule


class TestGenerateMissingInstancesTask:

    def test_one_item_per_active_rule(
        self, executor, db_session, series_service, clock, property_owner,
    ):
        rule = _daily_rule(series_service, property_owner)
        clock.advance_days(5)

        result = _run(executor, SWEEP)
        db_session.commit()

        assert result.status == BatchJobStatus.COMPLETED
        assert result.total_items == 1
        item = result.item_results[0]
        assert item.item_key == str(rule.id)
        assert item.result_data == {"backfill_status": "created", "instances_created": 5}
        assert series_service.list_instances(rule.id)[-1].occurrence_date == date(2025, 2, 13)

    def test_up_to_date_rule_still_succeeds(
        self, executor, series_service, property_owner,
    ):
        _daily_rule(series_service, property_owner)

        result = _run(executor, SWEEP)

        assert result.succeeded == 1
        assert result.item_results[0].result_data["backfill_status"] == "up_to_date"

    def test_malformed_rule_fails_its_item_only(
        self, executor, db_session, series_service, session_factory, property_owner,
    ):
        _daily_rule(series_service, property_owner)
        with session_factory() as session:
            session.add(
                RecurringRuleModel(
                    kind="expense",
                    org_id="org-1",
                    owner_scope_type="property",
                    owner_scope_id="prop-1",
                    anchor_date=date(2025, 1, 1),
                    frequency_unit="fortnightly",
                    interval=1,
                    title="Legacy row",
                    status="active",
                    created_by_id=uuid4(),
                )
            )
            session.commit()

        result = _run(executor, SWEEP)

        assert result.status == BatchJobStatus.PARTIALLY_COMPLETED
        failed = [i for i in result.item_results if i.status == BatchItemStatus.FAILED]
        assert [i.error_code for i in failed] == ["INVALID_FREQUENCY"]

    def test_org_parameter_filters_rules(self, executor, series_service, property_owner):
        _daily_rule(series_service, property_owner, org_id="org-1")
        _daily_rule(series_service, property_owner, org_id="org-2")

        result = _run(executor, SWEEP, parameters={"org_id": "org-2"})

        assert result.total_items == 1

    def test_vanished_rule_is_skipped(self, db_session, clock):
        task = GenerateMissingInstancesTask(clock)
        rule_id = str(uuid4())

        result = task.execute_item(
            BatchItemInput(item_index=0, item_key=rule_id, payload={"rule_id": rule_id}),
            {},
            db_session,
            clock.now(),
        )

        assert result.status == BatchItemStatus.SKIPPED
        assert result.result_data == {"backfill_status": "rule_missing"}


class InstanceCountingSweep(GenerateMissingInstancesTask):
    """The sweep, noting what a separate connection sees before each rule."""

    def __init__(self, clock, lock_registry, observer):
        super().__init__(clock, lock_registry=lock_registry)
        self._observer = observer
        self.visible_before_item: list[int] = []

    def execute_item(self, item, parameters, session, as_of):
        with self._observer.connect() as conn:
            self.visible_before_item.append(
                conn.execute(select(func.count(InstanceModel.id))).scalar_one()
            )
        return super().execute_item(item, parameters, session, as_of)


@pytest.fixture
def file_engine(tmp_path):
    """A file database, so a second connection only sees committed rows."""
    eng = create_engine(f"sqlite:///{tmp_path / 'sweep.db'}")
    import_all_models()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


class TestSweepCommitsPerRule:

    def test_each_rule_is_committed_before_the_next_starts(
        self, file_engine, clock, lock_registry, property_owner,
    ):
        factory = sessionmaker(bind=file_engine, expire_on_commit=False)
        service = RecurringSeriesService(
            factory, clock=clock, sweep_workers=1, lock_registry=lock_registry,
        )
        _daily_rule(service, property_owner)
        _daily_rule(service, property_owner)
        clock.advance_days(5)
        task = InstanceCountingSweep(clock, lock_registry, file_engine)
        registry = TaskRegistry()
        registry.register(task)

        with factory() as session:
            result = _run(BatchExecutor(session, registry, clock), SWEEP)
            session.commit()

        assert result.succeeded == 2
        assert task.visible_before_item == [48, 53]
        with file_engine.connect() as conn:
            assert conn.execute(select(func.count(InstanceModel.id))).scalar_one() == 58

    def test_rule_commit_happens_while_its_lock_is_held(
        self, executor, db_session, series_service, lock_registry, clock,
        property_owner,
    ):
        rule = _daily_rule(series_service, property_owner)
        clock.advance_days(1)
        held_at_commit: list[bool] = []
        event.listen(
            db_session,
            "after_commit",
            lambda session: held_at_commit.append(lock_registry.is_locked(rule.id)),
        )

        _run(executor, SWEEP)

        assert True in held_at_commit
        assert not lock_registry.is_locked(rule.id)

    def test_failed_rule_keeps_earlier_rules(
        self, executor, db_session, series_service, session_factory, clock,
        property_owner,
    ):
        rule = _daily_rule(series_service, property_owner)
        with session_factory() as session:
            session.add(
                RecurringRuleModel(
                    kind="expense",
                    org_id="org-1",
                    owner_scope_type="property",
                    owner_scope_id="prop-1",
                    anchor_date=date(2025, 1, 1),
                    frequency_unit="fortnightly",
                    interval=1,
                    title="Legacy row",
                    status="active",
                    created_by_id=uuid4(),
                )
            )
            session.commit()
        clock.advance_days(2)

        result = _run(executor, SWEEP)
        db_session.rollback()

        assert result.failed == 1
        assert series_service.list_instances(rule.id)[-1].occurrence_date == date(2025, 2, 10)

class TestLeaseEndReminderTask:

    def test_reminders_created_for_ending_lease(
        self, executor, db_session, series_service,
    ):
        lease = series_service.create_lease("org-1", date(2024, 3, 1), date(2025, 3, 1))
        series_service.create_lease("org-1", date(2024, 8, 1), date(2025, 8, 1))

        result = _run(executor, REMINDERS)
        db_session.commit()

        assert result.status == BatchJobStatus.COMPLETED
        assert result.total_items == 1
        assert result.item_results[0].item_key == str(lease.id)
        assert result.item_results[0].result_data == {"reminders_created": 3}
        assert len(series_service.list_pending_reminders(lease.owner_ref)) == 3

    def test_terminated_lease_is_skipped(self, db_session, series_service, clock):
        lease = series_service.create_lease(
            "org-1", date(2024, 3, 1), date(2025, 3, 1), status=LeaseStatus.TERMINATED,
        )
        task = LeaseEndReminderTask(clock)

        result = task.execute_item(
            BatchItemInput(
                item_index=0, item_key=str(lease.id), payload={"lease_id": str(lease.id)},
            ),
            {},
            db_session,
            datetime(2025, 1, 15, 9, 0),
        )

        assert result.status == BatchItemStatus.SKIPPED
