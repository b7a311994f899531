"""
Contract and payment ORM models (``prepaid_kernel.models.contract``).

Responsibility:
    Persistence for the prepaid contract row (the unit of locking for every
    ledger mutation) and the immutable payment receipts recorded against it.

Architecture position:
    Kernel > Models.  Imports db/ and domain/ only.  Mutation rules live in
    ``services/contract_ledger.py``; this module holds columns and
    conversions.

Invariants enforced:
    - contract_no and payment_no are unique business numbers.
    - ``version`` is the optimistic version counter: every UPDATE checks and
      bumps it, so a writer holding a stale row fails with StaleDataError.
    - CHECK constraints keep lesson counts and unearned non-negative even if
      a bug bypasses the ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from prepaid_kernel.db.base import TrackedBase
from prepaid_kernel.db.types import UNIT_PRICE_COLUMN
from prepaid_kernel.domain.dtos import (
    ContractInfo,
    ContractStatus,
    PaymentInfo,
    PaymentMethod,
    PaymentType,
)


class Contract(TrackedBase):
    """
    One prepaid purchase of a fixed lesson block.

    Table: ``ledger_contracts``
    """

    __tablename__ = "ledger_contracts"

    contract_no: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    package_id: Mapped[UUID] = mapped_column(nullable=False)

    original_price: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    contract_value: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    unit_price: Mapped[Decimal] = mapped_column(UNIT_PRICE_COLUMN, nullable=False)

    total_lessons: Mapped[int] = mapped_column(Integer, nullable=False)
    used_lessons: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remain_lessons: Mapped[int] = mapped_column(Integer, nullable=False)
    unearned: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))

    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ContractStatus.ACTIVE.value,
    )
    signed_at: Mapped[datetime] = mapped_column(nullable=False)
    terminated_at: Mapped[datetime | None]
    # Lessons extinguished by termination; counted in used_lessons.
    released_lessons: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    remark: Mapped[str | None] = mapped_column(String(2000))

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("remain_lessons >= 0", name="ck_contract_remain_non_negative"),
        CheckConstraint("used_lessons >= 0", name="ck_contract_used_non_negative"),
        CheckConstraint("unearned >= 0", name="ck_contract_unearned_non_negative"),
        CheckConstraint(
            "status IN ('active', 'completed', 'terminated')",
            name="ck_contract_status",
        ),
        Index("idx_contract_customer", "customer_id"),
        Index("idx_contract_location_status", "location_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ContractStatus.ACTIVE.value

    @property
    def is_terminated(self) -> bool:
        return self.status == ContractStatus.TERMINATED.value

    @property
    def is_funded(self) -> bool:
        return self.paid_amount > 0 or self.contract_value == 0

    def to_dto(self) -> ContractInfo:
        return ContractInfo(
            id=self.id,
            contract_no=self.contract_no,
            customer_id=self.customer_id,
            location_id=self.location_id,
            package_id=self.package_id,
            original_price=self.original_price,
            discount=self.discount,
            contract_value=self.contract_value,
            paid_amount=self.paid_amount,
            unit_price=self.unit_price,
            total_lessons=self.total_lessons,
            used_lessons=self.used_lessons,
            remain_lessons=self.remain_lessons,
            unearned=self.unearned,
            start_date=self.start_date,
            end_date=self.end_date,
            status=ContractStatus(self.status),
            signed_at=self.signed_at,
            terminated_at=self.terminated_at,
            released_lessons=self.released_lessons,
            snapshot=dict(self.snapshot or {}),
            remark=self.remark,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"<Contract {self.contract_no}: {self.status} "
            f"remain={self.remain_lessons}/{self.total_lessons} unearned={self.unearned}>"
        )


class PaymentRecord(TrackedBase):
    """
    Immutable receipt of money received against a contract.

    Table: ``ledger_payments``
    """

    __tablename__ = "ledger_payments"

    payment_no: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    contract_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_contracts.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(nullable=False)
    transaction_ref: Mapped[str | None] = mapped_column(String(100))
    remark: Mapped[str | None] = mapped_column(String(2000))

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_contract", "contract_id"),
        Index("idx_payment_location_paid_at", "location_id", "paid_at"),
    )

    def to_dto(self) -> PaymentInfo:
        return PaymentInfo(
            id=self.id,
            payment_no=self.payment_no,
            contract_id=self.contract_id,
            location_id=self.location_id,
            amount=self.amount,
            method=PaymentMethod(self.method),
            payment_type=PaymentType(self.payment_type),
            paid_at=self.paid_at,
            transaction_ref=self.transaction_ref,
            remark=self.remark,
        )

    def __repr__(self) -> str:
        return f"<PaymentRecord {self.payment_no}: {self.amount} {self.method}>"
