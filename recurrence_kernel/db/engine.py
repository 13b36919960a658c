"""
Process-wide engine and session factory.

PostgreSQL is the production target: READ COMMITTED plus ``SELECT ... FOR
UPDATE`` on the rule row serializes writers per rule across processes.
SQLite works for development and the test suite; it ignores row locks, so
the in-process ``RuleLockRegistry`` is what serializes writers there.  An
in-memory SQLite database is pinned to one shared connection, otherwise
every new session would see an empty database.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recurrence_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_kwargs(url, pool_size: int, max_overflow: int) -> dict:
    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """Create the engine and session factory, replacing any earlier ones.

    ``pool_size`` and ``max_overflow`` only apply to pooled (non-SQLite)
    backends.  Sessions do not expire on commit: the facade hands ORM-built
    DTOs back after committing.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, echo=echo, **_engine_kwargs(url, pool_size, max_overflow))
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "database": url.database, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The factory sweeps use to open one session per rule."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """One transaction: commit on success, roll back and re-raise on error."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every table on ``Base.metadata``.

    Kernel models are registered here; batch tables exist only if the caller
    has imported ``recurrence_batch.models`` first.
    """
    from recurrence_kernel.db.base import Base
    from recurrence_kernel.models import import_all_models

    import_all_models()
    Base.metadata.create_all(get_engine())


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
