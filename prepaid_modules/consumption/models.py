"""
Consumption domain models (``prepaid_modules.consumption.models``).

Frozen request and result types for single and roster (batch) consumption.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from prepaid_kernel.domain.dtos import ConsumptionType


class AttendanceStatus(str, Enum):
    """Roster outcome for one student in one session."""

    ATTENDED = "attended"
    MAKEUP = "makeup"
    ABSENT = "absent"
    LEAVE = "leave"
    PENDING = "pending"


@dataclass(frozen=True)
class AttendanceEntry:
    contract_id: UUID
    status: AttendanceStatus = AttendanceStatus.ATTENDED
    lesson_count: int = 1
    remark: str | None = None


@dataclass(frozen=True)
class BatchConsumptionRequest:
    """One teaching session's roster."""

    session_date: date
    teacher_id: UUID
    location_id: UUID
    actor_id: UUID
    entries: tuple[AttendanceEntry, ...]

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError("roster has no entries")


@dataclass(frozen=True)
class ConsumptionSuccess:
    contract_id: UUID
    attendance: AttendanceStatus
    record_id: UUID
    record_no: str
    consumption_type: ConsumptionType
    lesson_count: int
    amount: Decimal
    before_remain: int
    after_remain: int
    before_unearned: Decimal
    after_unearned: Decimal


@dataclass(frozen=True)
class AttendanceNote:
    """Attendance recorded without touching the ledger."""

    contract_id: UUID
    attendance: AttendanceStatus
    remark: str | None = None


@dataclass(frozen=True)
class ConsumptionFailure:
    contract_id: UUID
    attendance: AttendanceStatus
    error_code: str
    message: str


@dataclass(frozen=True)
class BatchConsumptionResult:
    session_date: date
    teacher_id: UUID
    location_id: UUID
    successes: tuple[ConsumptionSuccess, ...] = ()
    notes: tuple[AttendanceNote, ...] = ()
    failures: tuple[ConsumptionFailure, ...] = ()

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def noted_count(self) -> int:
        return len(self.notes)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def leave_count(self) -> int:
        return self._count(AttendanceStatus.LEAVE)

    @property
    def absent_count(self) -> int:
        return self._count(AttendanceStatus.ABSENT)

    @property
    def total_lessons(self) -> int:
        return sum(s.lesson_count for s in self.successes)

    @property
    def total_amount(self) -> Decimal:
        return sum((s.amount for s in self.successes), Decimal("0.00"))

    def _count(self, status: AttendanceStatus) -> int:
        return sum(
            1
            for item in (*self.successes, *self.notes, *self.failures)
            if item.attendance == status
        )


@dataclass(frozen=True)
class TeacherStatistics:
    teacher_id: UUID
    teacher_name: str | None
    lesson_count: int
    amount: Decimal
    record_count: int
