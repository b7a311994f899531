"""
Refund ORM Models (``prepaid_modules.refund.orm``).

Responsibility
--------------
Persistence for refund cases.  A partial unique index allows at most one
open (PENDING or APPROVED) case per contract, so two concurrent requests
cannot both be accepted even when they pass the service check together.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``prepaid_kernel.db`` and
sibling ``models.py``.  MUST NOT be imported by ``prepaid_kernel``.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from prepaid_kernel.db.base import TrackedBase
from prepaid_kernel.db.types import UNIT_PRICE_COLUMN
from prepaid_modules.refund.models import RefundCaseInfo, RefundStatus, RefundType

_OPEN_CASE_PREDICATE = "status IN ('pending', 'approved')"


class RefundCaseModel(TrackedBase):
    """
    ORM model for ``RefundCaseInfo``.

    Table: ``ledger_refund_cases``
    """

    __tablename__ = "ledger_refund_cases"

    refund_no: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    contract_id: Mapped[UUID] = mapped_column(ForeignKey("ledger_contracts.id"), nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    refund_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    remain_lessons: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(UNIT_PRICE_COLUMN, nullable=False)
    refundable_amount: Mapped[Decimal] = mapped_column(nullable=False)
    deduction: Mapped[Decimal] = mapped_column(nullable=False)
    payable_amount: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(2000), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(nullable=False)

    approved_by_id: Mapped[UUID | None]
    approved_at: Mapped[datetime | None]
    approval_remark: Mapped[str | None] = mapped_column(String(2000))

    refund_method: Mapped[str | None] = mapped_column(String(20))
    refund_account: Mapped[str | None] = mapped_column(String(200))
    transaction_ref: Mapped[str | None] = mapped_column(String(100))
    completed_at: Mapped[datetime | None]
    completed_date: Mapped[date | None]

    cancelled_by_id: Mapped[UUID | None]
    cancelled_at: Mapped[datetime | None]
    cancel_reason: Mapped[str | None] = mapped_column(String(2000))

    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint("deduction >= 0", name="ck_refund_deduction_non_negative"),
        CheckConstraint("payable_amount >= 0", name="ck_refund_payable_non_negative"),
        CheckConstraint(
            "payable_amount <= refundable_amount", name="ck_refund_payable_within_refundable",
        ),
        Index(
            "uq_refund_open_case_per_contract",
            "contract_id",
            unique=True,
            postgresql_where=text(_OPEN_CASE_PREDICATE),
            sqlite_where=text(_OPEN_CASE_PREDICATE),
        ),
        Index("idx_refund_location_status", "location_id", "status"),
        Index("idx_refund_completed_date", "completed_date"),
    )

    @property
    def is_open(self) -> bool:
        return self.status in (RefundStatus.PENDING.value, RefundStatus.APPROVED.value)

    def to_dto(self) -> RefundCaseInfo:
        return RefundCaseInfo(
            id=self.id,
            refund_no=self.refund_no,
            contract_id=self.contract_id,
            location_id=self.location_id,
            refund_type=RefundType(self.refund_type),
            status=RefundStatus(self.status),
            remain_lessons=self.remain_lessons,
            unit_price=self.unit_price,
            refundable_amount=self.refundable_amount,
            deduction=self.deduction,
            payable_amount=self.payable_amount,
            reason=self.reason,
            requested_by_id=self.created_by_id,
            requested_at=self.requested_at,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            approval_remark=self.approval_remark,
            refund_method=self.refund_method,
            refund_account=self.refund_account,
            transaction_ref=self.transaction_ref,
            completed_at=self.completed_at,
            cancelled_by_id=self.cancelled_by_id,
            cancelled_at=self.cancelled_at,
            cancel_reason=self.cancel_reason,
            snapshot=dict(self.snapshot or {}),
        )

    def __repr__(self) -> str:
        return (
            f"<RefundCaseModel {self.refund_no}: {self.status} "
            f"payable={self.payable_amount}>"
        )
