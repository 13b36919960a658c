"""
Module: recurrence_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/base.py,
    models/ and domain/ value objects.  Selectors NEVER create, modify, or
    delete data.

Invariants enforced:
    - Read-only access: no session.add(), delete(), commit(), or flush().
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from recurrence_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Non-goals:
        - BaseSelector does NOT define any query methods; subclasses implement
          rule, instance, reminder and lease queries.
    """

    def __init__(self, session: Session):
        self.session = session
