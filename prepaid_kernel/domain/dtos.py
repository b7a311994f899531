"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the ledger's status enums and the immutable records that services
    return to callers: ContractInfo, PaymentInfo, ConsumptionInfo,
    CashFlowInfo.  Callers never receive ORM entities.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ORM models convert to
    these via ``to_dto()``; nothing here imports the ORM.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ContractStatus(str, Enum):
    """Contract lifecycle.  Nothing leaves TERMINATED."""

    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class PaymentMethod(str, Enum):
    CASH = "cash"
    WECHAT = "wechat"
    ALIPAY = "alipay"
    BANK = "bank"
    POS = "pos"


class PaymentType(str, Enum):
    SIGN = "sign"
    INSTALLMENT = "installment"
    RENEWAL = "renewal"


class ConsumptionType(str, Enum):
    NORMAL = "normal"
    ABSENCE_DEDUCT = "absence_deduct"
    MAKEUP = "makeup"
    TRIAL = "trial"


class ConsumptionStatus(str, Enum):
    NORMAL = "normal"
    REVOKED = "revoked"


class CashFlowDirection(str, Enum):
    IN = "in"
    OUT = "out"


class CashFlowSource(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"


# Legal contract status edges.
CONTRACT_TRANSITIONS: frozenset[tuple[ContractStatus, ContractStatus]] = frozenset({
    (ContractStatus.ACTIVE, ContractStatus.COMPLETED),
    (ContractStatus.COMPLETED, ContractStatus.ACTIVE),
    (ContractStatus.ACTIVE, ContractStatus.TERMINATED),
    (ContractStatus.COMPLETED, ContractStatus.TERMINATED),
})


@dataclass(frozen=True)
class ContractInfo:
    """Read-only view of a contract's ledger state."""

    id: UUID
    contract_no: str
    customer_id: UUID
    location_id: UUID
    package_id: UUID
    original_price: Decimal
    discount: Decimal
    contract_value: Decimal
    paid_amount: Decimal
    unit_price: Decimal
    total_lessons: int
    used_lessons: int
    remain_lessons: int
    unearned: Decimal
    start_date: date
    end_date: date
    status: ContractStatus
    signed_at: datetime
    terminated_at: datetime | None = None
    released_lessons: int = 0
    snapshot: dict[str, Any] = field(default_factory=dict)
    remark: str | None = None
    version: int = 1

    @property
    def is_funded(self) -> bool:
        return self.paid_amount > 0 or self.contract_value == 0

    @property
    def outstanding_amount(self) -> Decimal:
        return self.contract_value - self.paid_amount


@dataclass(frozen=True)
class PaymentInfo:
    id: UUID
    payment_no: str
    contract_id: UUID
    location_id: UUID
    amount: Decimal
    method: PaymentMethod
    payment_type: PaymentType
    paid_at: datetime
    transaction_ref: str | None = None
    remark: str | None = None


@dataclass(frozen=True)
class ConsumptionInfo:
    """One consumption event with the before/after snapshot used for reversal."""

    id: UUID
    record_no: str
    contract_id: UUID
    location_id: UUID
    teacher_id: UUID | None
    session_date: date
    consumption_type: ConsumptionType
    lesson_count: int
    unit_price: Decimal
    amount: Decimal
    rounding_adjustment: Decimal
    before_remain: int
    after_remain: int
    before_unearned: Decimal
    after_unearned: Decimal
    status: ConsumptionStatus
    recorded_at: datetime
    revoke_reason: str | None = None
    revoked_at: datetime | None = None
    remark: str | None = None

    @property
    def is_revoked(self) -> bool:
        return self.status == ConsumptionStatus.REVOKED


@dataclass(frozen=True)
class CashFlowInfo:
    id: UUID
    direction: CashFlowDirection
    amount: Decimal
    location_id: UUID
    contract_id: UUID
    source_type: CashFlowSource
    source_id: UUID
    occurred_at: datetime
    business_date: date
    method: str | None = None
