"""Database layer - engine, base classes, column types."""

from prepaid_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from prepaid_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    run_in_transaction,
)
from prepaid_kernel.db.types import MONEY_COLUMN, UNIT_PRICE_COLUMN

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "run_in_transaction",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MONEY_COLUMN",
    "UNIT_PRICE_COLUMN",
]
