"""
Declarative bases for every ORM model in the engine.

``Base`` fixes the primary-key convention (a uuid4 stored as text so the
same schema runs on PostgreSQL and SQLite) and the Python-type to
column-type map.  ``TrackedBase`` adds who/when columns; rules, instances,
leases and batch rows all inherit from it.

Nothing in this module may import models, services, selectors or domain
code: everything else in the kernel imports *it*.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """A ``uuid.UUID`` on the Python side, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    # Money is exact: Decimal -> NUMERIC(19, 4), never a float.
    # Datetimes are naive wall-clock values, stored without a time zone.
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(19, 4),
        datetime: DateTime(),
        date: Date,
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds ``created_*`` / ``updated_*`` columns.

    Timestamps default to the database clock; services that own an injected
    ``Clock`` overwrite ``created_at`` explicitly.  ``created_by_id`` is
    mandatory: system writes use ``SYSTEM_ACTOR_ID``.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(),
    )
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString())
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString())


UUID = PyUUID
