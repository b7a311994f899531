"""
Settlement ORM Models (``prepaid_modules.settlement.orm``).

One row per (business_date, location_id).  The unique constraint is what
makes a duplicate settlement fail even when two operators race.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from prepaid_kernel.db.base import TrackedBase
from prepaid_modules.settlement.models import SettlementReportInfo


class SettlementReportModel(TrackedBase):
    """
    Table: ``ledger_settlement_reports``
    """

    __tablename__ = "ledger_settlement_reports"

    business_date: Mapped[date] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    inflow_total: Mapped[Decimal] = mapped_column(nullable=False)
    inflow_count: Mapped[int] = mapped_column(Integer, nullable=False)
    outflow_total: Mapped[Decimal] = mapped_column(nullable=False)
    outflow_count: Mapped[int] = mapped_column(Integer, nullable=False)
    net_cash_flow: Mapped[Decimal] = mapped_column(nullable=False)
    recognized_revenue: Mapped[Decimal] = mapped_column(nullable=False)
    consumption_count: Mapped[int] = mapped_column(Integer, nullable=False)
    consumed_lessons: Mapped[int] = mapped_column(Integer, nullable=False)
    closing_liability: Mapped[Decimal] = mapped_column(nullable=False)
    settled_by_id: Mapped[UUID] = mapped_column(nullable=False)
    settled_at: Mapped[datetime] = mapped_column(nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("business_date", "location_id", name="uq_settlement_date_location"),
        Index("idx_settlement_location_date", "location_id", "business_date"),
    )

    def to_dto(self) -> SettlementReportInfo:
        return SettlementReportInfo(
            id=self.id,
            business_date=self.business_date,
            location_id=self.location_id,
            inflow_total=self.inflow_total,
            inflow_count=self.inflow_count,
            outflow_total=self.outflow_total,
            outflow_count=self.outflow_count,
            net_cash_flow=self.net_cash_flow,
            recognized_revenue=self.recognized_revenue,
            consumption_count=self.consumption_count,
            consumed_lessons=self.consumed_lessons,
            closing_liability=self.closing_liability,
            settled_by_id=self.settled_by_id,
            settled_at=self.settled_at,
            snapshot=dict(self.snapshot or {}),
        )

    def __repr__(self) -> str:
        return f"<SettlementReportModel {self.business_date} {self.location_id}>"
