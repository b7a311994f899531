"""
Audit event ORM model (``prepaid_kernel.models.audit_event``).

Append-only, hash-chained record of every ledger mutation, every refund
and forecast-override decision, and every attendance note that deliberately
made no ledger mutation.

Guarantees:
    - seq is unique and monotonically increasing (allocated from a locked
      sequence counter).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - prev_hash is None only for the genesis event.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from prepaid_kernel.db.base import Base


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Contract ledger
    CONTRACT_CREATED = "contract_created"
    PAYMENT_APPLIED = "payment_applied"
    LESSON_CONSUMED = "lesson_consumed"
    CONSUMPTION_REVOKED = "consumption_revoked"
    CONTRACT_TERMINATED = "contract_terminated"

    # Attendance that made no ledger mutation
    ATTENDANCE_NOTED = "attendance_noted"

    # Refund workflow
    REFUND_REQUESTED = "refund_requested"
    REFUND_APPROVED = "refund_approved"
    REFUND_REJECTED = "refund_rejected"
    REFUND_COMPLETED = "refund_completed"
    REFUND_CANCELLED = "refund_cancelled"

    # Settlement and forecast
    SETTLEMENT_CLOSED = "settlement_closed"
    FORECAST_OVERRIDE_SET = "forecast_override_set"
    FORECAST_OVERRIDE_CLEARED = "forecast_override_cleared"
    FORECAST_OVERRIDE_LOCKED = "forecast_override_locked"


class AuditEvent(Base):
    """
    Table: ``ledger_audit_events``
    """

    __tablename__ = "ledger_audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64))
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def __repr__(self) -> str:
        return f"<AuditEvent {self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"
