"""
Pytest fixtures for the recurrence engine test suite.

Provides:
- In-memory SQLite database (one shared connection) with every table
- A DeterministicClock pinned to a known "today"
- A RecurringSeriesService wired to both, with a private lock registry
- Structured log capture

SQLite ignores ``SELECT ... FOR UPDATE``; the in-process rule locks carry
the serialization in these tests, exactly as they do for a single worker.
"""

import json
import logging
from datetime import datetime
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import recurrence_batch.models  # noqa: F401  (registers batch tables)
from recurrence_kernel.db.base import Base
from recurrence_kernel.domain.clock import DeterministicClock
from recurrence_kernel.domain.recurring import OwnerRef, OwnerScopeType
from recurrence_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from recurrence_kernel.models import import_all_models
from recurrence_kernel.services.recurring_service import RecurringSeriesService
from recurrence_kernel.services.rule_locks import RuleLockRegistry

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# "Today" for most tests
TEST_NOW = datetime(2025, 1, 15, 9, 0, 0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture recurrence_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, series_service):
            series_service.generate_missing_instances()
            logs = captured_logs()
            assert any(r["message"] == "sweep_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("recurrence_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared by every session of one test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import_all_models()
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=TEST_NOW)


@pytest.fixture
def lock_registry():
    return RuleLockRegistry(timeout_seconds=0.5)


@pytest.fixture
def series_service(session_factory, clock, lock_registry):
    return RecurringSeriesService(
        session_factory,
        clock=clock,
        sweep_workers=1,
        lock_registry=lock_registry,
        actor_id=TEST_ACTOR_ID,
    )


@pytest.fixture
def property_owner():
    return OwnerRef(OwnerScopeType.PROPERTY, "prop-1")
