"""
Cash flow event ORM model (``prepaid_kernel.models.cash_flow``).

Append-only record of money in (payments) and out (completed refunds).
Daily settlement and the rolling forecast aggregate these rows.

Invariants enforced:
    - (source_type, source_id) is unique: one payment or one refund case can
      produce at most one cash flow event, however often its writer retries.
    - ``business_date`` is fixed at write time and is the settlement day key.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from prepaid_kernel.db.base import TrackedBase
from prepaid_kernel.domain.dtos import CashFlowDirection, CashFlowInfo, CashFlowSource


class CashFlowEvent(TrackedBase):
    """
    Table: ``ledger_cash_flow_events``
    """

    __tablename__ = "ledger_cash_flow_events"

    direction: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    contract_id: Mapped[UUID] = mapped_column(nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[UUID] = mapped_column(nullable=False)
    method: Mapped[str | None] = mapped_column(String(20))
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    business_date: Mapped[date] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("source_type", "source_id", name="uq_cash_flow_source"),
        CheckConstraint("amount > 0", name="ck_cash_flow_amount_positive"),
        CheckConstraint("direction IN ('in', 'out')", name="ck_cash_flow_direction"),
        Index("idx_cash_flow_location_date", "location_id", "business_date"),
        Index("idx_cash_flow_date_direction", "business_date", "direction"),
    )

    def to_dto(self) -> CashFlowInfo:
        return CashFlowInfo(
            id=self.id,
            direction=CashFlowDirection(self.direction),
            amount=self.amount,
            location_id=self.location_id,
            contract_id=self.contract_id,
            source_type=CashFlowSource(self.source_type),
            source_id=self.source_id,
            occurred_at=self.occurred_at,
            business_date=self.business_date,
            method=self.method,
        )

    def __repr__(self) -> str:
        return f"<CashFlowEvent {self.direction} {self.amount} {self.source_type}:{self.source_id}>"
