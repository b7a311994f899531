"""
Declarative bases for the ledger tables.

Every ledger row is keyed by a uuid4 stored as ``String(36)`` so the same
schema runs on PostgreSQL and SQLite.  Bare ``Decimal`` annotations map to the
money column (``Numeric(18, 2)``).  Unit prices pass ``UNIT_PRICE_COLUMN``
(``Numeric(18, 6)``) to ``mapped_column`` explicitly: a type placed inside
``Annotated[...]`` is not read by the declarative mapper.

Mutable ledger tables extend ``TrackedBase``, which records who created a
row and who last touched it.

This module sits at the bottom of the kernel: it imports nothing from
models, services or selectors.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from prepaid_kernel.db.types import MONEY_COLUMN

# Applied only to constraints and indexes declared without an explicit name.
LEDGER_NAMING_CONVENTION = {
    "ix": "idx_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID carried as its 36-character text form.

    Binding accepts either a ``uuid.UUID`` or its string form, so ids read
    back from JSON snapshots or CLI arguments can be passed straight through.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, PyUUID):
            return str(value)
        return str(PyUUID(str(value)))

    def process_result_value(self, value, dialect):
        return PyUUID(value) if value is not None else None


class Base(DeclarativeBase):
    """Root of every ledger table: uuid4 ``id`` plus the shared type map."""

    metadata = MetaData(naming_convention=LEDGER_NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY_COLUMN,
        datetime: DateTime(timezone=True),
        date: Date(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds operator tracking to a ledger table.

    ``created_by_id`` is mandatory: contracts, payments, consumption records,
    refund cases and settlement reports always name the operator behind them.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)

    def touched_by(self, actor_id: PyUUID) -> None:
        """Record the operator responsible for the pending change."""
        self.updated_by_id = actor_id


UUID = PyUUID
