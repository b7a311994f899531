"""
Refund domain models (``prepaid_modules.refund.models``).

Frozen DTOs for refund quotes, cases and reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from prepaid_engines.refund_risk import RiskAssessment, RiskLevel


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_REFUND_STATUSES: tuple[RefundStatus, ...] = (RefundStatus.PENDING, RefundStatus.APPROVED)


class RefundType(str, Enum):
    NORMAL = "normal"
    TRANSFER = "transfer"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class RefundQuote:
    """What a refund would pay today.  Never persisted by itself."""

    contract_id: UUID
    contract_no: str
    remain_lessons: int
    unit_price: Decimal
    refundable_amount: Decimal
    deduction: Decimal
    payable_amount: Decimal
    risk: RiskAssessment


@dataclass(frozen=True)
class RefundCaseInfo:
    id: UUID
    refund_no: str
    contract_id: UUID
    location_id: UUID
    refund_type: RefundType
    status: RefundStatus
    remain_lessons: int
    unit_price: Decimal
    refundable_amount: Decimal
    deduction: Decimal
    payable_amount: Decimal
    reason: str
    requested_by_id: UUID
    requested_at: datetime
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    approval_remark: str | None = None
    refund_method: str | None = None
    refund_account: str | None = None
    transaction_ref: str | None = None
    completed_at: datetime | None = None
    cancelled_by_id: UUID | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_REFUND_STATUSES

    @property
    def risk_level(self) -> str | None:
        return (self.snapshot.get("risk") or {}).get("level")


@dataclass(frozen=True)
class RefundBreakdown:
    count: int
    amount: Decimal


@dataclass(frozen=True)
class RefundStatistics:
    """Completed refunds in a period."""

    count: int
    total_payable: Decimal
    by_type: dict[str, RefundBreakdown] = field(default_factory=dict)
    by_location: dict[UUID, RefundBreakdown] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundRateRow:
    location_id: UUID
    inflow: Decimal
    refunded: Decimal
    rate: Decimal
    level: RiskLevel
