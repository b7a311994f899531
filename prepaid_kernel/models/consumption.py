"""
Consumption record ORM model (``prepaid_kernel.models.consumption``).

Responsibility:
    One atomic "lessons attended" event.  The before/after snapshot columns
    are what a revocation reverses, so they are written once and never
    recomputed.

Invariants enforced:
    - Records are never deleted; revocation flips ``status`` to REVOKED and
      fills the revoke columns.
    - before_remain - after_remain == lesson_count.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from prepaid_kernel.db.base import TrackedBase
from prepaid_kernel.db.types import UNIT_PRICE_COLUMN
from prepaid_kernel.domain.dtos import ConsumptionInfo, ConsumptionStatus, ConsumptionType


class ConsumptionRecord(TrackedBase):
    """
    Table: ``ledger_consumption_records``
    """

    __tablename__ = "ledger_consumption_records"

    record_no: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    contract_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_contracts.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    teacher_id: Mapped[UUID | None]
    session_date: Mapped[date] = mapped_column(nullable=False)
    consumption_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConsumptionType.NORMAL.value,
    )

    lesson_count: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(UNIT_PRICE_COLUMN, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    rounding_adjustment: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0.00"),
    )

    before_remain: Mapped[int] = mapped_column(Integer, nullable=False)
    after_remain: Mapped[int] = mapped_column(Integer, nullable=False)
    before_unearned: Mapped[Decimal] = mapped_column(nullable=False)
    after_unearned: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConsumptionStatus.NORMAL.value,
    )
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)
    revoke_reason: Mapped[str | None] = mapped_column(String(2000))
    revoked_at: Mapped[datetime | None]
    revoked_by_id: Mapped[UUID | None]
    remark: Mapped[str | None] = mapped_column(String(2000))

    __table_args__ = (
        CheckConstraint("lesson_count > 0", name="ck_consumption_lessons_positive"),
        CheckConstraint(
            "before_remain - after_remain = lesson_count",
            name="ck_consumption_remain_delta",
        ),
        Index("idx_consumption_contract", "contract_id"),
        Index("idx_consumption_location_date", "location_id", "session_date"),
        Index("idx_consumption_teacher_date", "teacher_id", "session_date"),
    )

    @property
    def is_revoked(self) -> bool:
        return self.status == ConsumptionStatus.REVOKED.value

    def to_dto(self) -> ConsumptionInfo:
        return ConsumptionInfo(
            id=self.id,
            record_no=self.record_no,
            contract_id=self.contract_id,
            location_id=self.location_id,
            teacher_id=self.teacher_id,
            session_date=self.session_date,
            consumption_type=ConsumptionType(self.consumption_type),
            lesson_count=self.lesson_count,
            unit_price=self.unit_price,
            amount=self.amount,
            rounding_adjustment=self.rounding_adjustment,
            before_remain=self.before_remain,
            after_remain=self.after_remain,
            before_unearned=self.before_unearned,
            after_unearned=self.after_unearned,
            status=ConsumptionStatus(self.status),
            recorded_at=self.recorded_at,
            revoke_reason=self.revoke_reason,
            revoked_at=self.revoked_at,
            remark=self.remark,
        )

    def __repr__(self) -> str:
        return f"<ConsumptionRecord {self.record_no}: {self.lesson_count} lessons {self.status}>"
