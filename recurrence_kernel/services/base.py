"""
BaseService -- abstract base for all flush-only kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write service in the kernel layer.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  The only class
    that commits or rolls back is ``RecurringSeriesService``, which owns one
    transaction per rule (sweeps) or per operation (mutations, cascades).

Failure modes:
    - If a subclass commits on its own, a cascade can be left half-applied,
      which breaks the retry-in-full contract of ``cascade_terminate``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from recurrence_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel write services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
