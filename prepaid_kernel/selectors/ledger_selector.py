"""
Module: prepaid_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries for reporting, settlement and the
    forecast: contract lookups, payments, consumption records, cash flow
    totals, outstanding liability, statistics, and an invariant audit over
    stored contracts.
Architecture position: Kernel > Selectors.  Imports models/, domain DTOs and
    ledger rules.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Revenue is derived from NORMAL consumption records; REVOKED records
      never count.
    - Liability totals are sums of stored unearned balances.

Audit relevance:
    ``find_invariant_violations`` re-checks every stored contract with the
    same rules the ledger enforces on write.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from prepaid_kernel.domain.dtos import (
    CashFlowDirection,
    CashFlowInfo,
    ConsumptionInfo,
    ConsumptionStatus,
    ContractInfo,
    ContractStatus,
    PaymentInfo,
)
from prepaid_kernel.domain.ledger_rules import invariant_violations
from prepaid_kernel.models.cash_flow import CashFlowEvent
from prepaid_kernel.models.consumption import ConsumptionRecord
from prepaid_kernel.models.contract import Contract, PaymentRecord
from prepaid_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class CashFlowTotals:
    inflow: Decimal
    inflow_count: int
    outflow: Decimal
    outflow_count: int

    @property
    def net(self) -> Decimal:
        return self.inflow - self.outflow


@dataclass(frozen=True)
class RevenueTotals:
    amount: Decimal
    lessons: int
    record_count: int


@dataclass(frozen=True)
class PaymentStatistics:
    total_amount: Decimal
    payment_count: int
    by_method: dict[str, Decimal] = field(default_factory=dict)
    by_type: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class ContractStatistics:
    contract_count: int
    by_status: dict[str, int]
    total_contract_value: Decimal
    total_paid: Decimal
    total_unearned: Decimal


@dataclass(frozen=True)
class TeacherTotals:
    teacher_id: UUID
    lessons: int
    amount: Decimal
    record_count: int


@dataclass(frozen=True)
class InvariantViolationRow:
    contract_id: UUID
    contract_no: str
    violations: tuple[str, ...]


class LedgerSelector(BaseSelector):
    """Read-only queries over the contract ledger tables."""

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def get_contract(self, contract_id: UUID) -> ContractInfo | None:
        contract = self.session.get(Contract, contract_id)
        return contract.to_dto() if contract else None

    def get_contract_by_no(self, contract_no: str) -> ContractInfo | None:
        contract = self.session.execute(
            select(Contract).where(Contract.contract_no == contract_no)
        ).scalar_one_or_none()
        return contract.to_dto() if contract else None

    def list_contracts(
        self,
        location_id: UUID | None = None,
        customer_id: UUID | None = None,
        status: ContractStatus | None = None,
    ) -> list[ContractInfo]:
        stmt = select(Contract).order_by(Contract.contract_no)
        if location_id is not None:
            stmt = stmt.where(Contract.location_id == location_id)
        if customer_id is not None:
            stmt = stmt.where(Contract.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Contract.status == ContractStatus(status).value)
        return [c.to_dto() for c in self.session.execute(stmt).scalars()]

    def liability_total(self, location_id: UUID | None = None) -> Decimal:
        """Sum of unearned balances across open contracts."""
        stmt = select(func.sum(Contract.unearned)).where(
            Contract.status != ContractStatus.TERMINATED.value
        )
        if location_id is not None:
            stmt = stmt.where(Contract.location_id == location_id)
        return self._money(self.session.execute(stmt).scalar())

    def contract_statistics(self, location_id: UUID | None = None) -> ContractStatistics:
        stmt = select(
            Contract.status,
            func.count(Contract.id),
            func.sum(Contract.contract_value),
            func.sum(Contract.paid_amount),
            func.sum(Contract.unearned),
        ).group_by(Contract.status)
        if location_id is not None:
            stmt = stmt.where(Contract.location_id == location_id)

        by_status: dict[str, int] = {s.value: 0 for s in ContractStatus}
        count = 0
        value = paid = unearned = Decimal("0.00")
        for status, n, value_sum, paid_sum, unearned_sum in self.session.execute(stmt):
            by_status[status] = n
            count += n
            value += self._money(value_sum)
            paid += self._money(paid_sum)
            unearned += self._money(unearned_sum)
        return ContractStatistics(
            contract_count=count,
            by_status=by_status,
            total_contract_value=value,
            total_paid=paid,
            total_unearned=unearned,
        )

    def find_invariant_violations(
        self, location_id: UUID | None = None,
    ) -> list[InvariantViolationRow]:
        stmt = select(Contract).order_by(Contract.contract_no)
        if location_id is not None:
            stmt = stmt.where(Contract.location_id == location_id)
        rows = []
        for c in self.session.execute(stmt).scalars():
            problems = invariant_violations(
                total_lessons=c.total_lessons,
                used_lessons=c.used_lessons,
                remain_lessons=c.remain_lessons,
                unit_price=c.unit_price,
                unearned=c.unearned,
                paid_amount=c.paid_amount,
                status=ContractStatus(c.status),
            )
            if problems:
                rows.append(InvariantViolationRow(c.id, c.contract_no, tuple(problems)))
        return rows

    # ------------------------------------------------------------------
    # Payments and cash flow
    # ------------------------------------------------------------------

    def payments_for_contract(self, contract_id: UUID) -> list[PaymentInfo]:
        stmt = (
            select(PaymentRecord)
            .where(PaymentRecord.contract_id == contract_id)
            .order_by(PaymentRecord.paid_at, PaymentRecord.payment_no)
        )
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    def payment_statistics(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> PaymentStatistics:
        """Payments whose cash landed between ``start`` and ``end`` inclusive."""
        stmt = (
            select(PaymentRecord.method, PaymentRecord.payment_type, func.count(), func.sum(PaymentRecord.amount))
            .join(
                CashFlowEvent,
                (CashFlowEvent.source_id == PaymentRecord.id)
                & (CashFlowEvent.direction == CashFlowDirection.IN.value),
            )
            .where(CashFlowEvent.business_date.between(start, end))
            .group_by(PaymentRecord.method, PaymentRecord.payment_type)
        )
        if location_id is not None:
            stmt = stmt.where(PaymentRecord.location_id == location_id)

        by_method: dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
        by_type: dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
        total = Decimal("0.00")
        count = 0
        for method, payment_type, n, amount in self.session.execute(stmt):
            amount = self._money(amount)
            by_method[method] += amount
            by_type[payment_type] += amount
            total += amount
            count += n
        return PaymentStatistics(
            total_amount=total,
            payment_count=count,
            by_method=dict(by_method),
            by_type=dict(by_type),
        )

    def cash_flows(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
        direction: CashFlowDirection | None = None,
    ) -> list[CashFlowInfo]:
        stmt = (
            select(CashFlowEvent)
            .where(CashFlowEvent.business_date.between(start, end))
            .order_by(CashFlowEvent.occurred_at)
        )
        if location_id is not None:
            stmt = stmt.where(CashFlowEvent.location_id == location_id)
        if direction is not None:
            stmt = stmt.where(CashFlowEvent.direction == CashFlowDirection(direction).value)
        return [e.to_dto() for e in self.session.execute(stmt).scalars()]

    def cash_flow_totals(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> CashFlowTotals:
        stmt = (
            select(CashFlowEvent.direction, func.count(), func.sum(CashFlowEvent.amount))
            .where(CashFlowEvent.business_date.between(start, end))
            .group_by(CashFlowEvent.direction)
        )
        if location_id is not None:
            stmt = stmt.where(CashFlowEvent.location_id == location_id)

        totals = {d.value: (0, Decimal("0.00")) for d in CashFlowDirection}
        for direction, n, amount in self.session.execute(stmt):
            totals[direction] = (n, self._money(amount))
        in_count, inflow = totals[CashFlowDirection.IN.value]
        out_count, outflow = totals[CashFlowDirection.OUT.value]
        return CashFlowTotals(
            inflow=inflow,
            inflow_count=in_count,
            outflow=outflow,
            outflow_count=out_count,
        )

    def cash_flow_by_location(self, start: date, end: date) -> dict[UUID, CashFlowTotals]:
        stmt = (
            select(
                CashFlowEvent.location_id,
                CashFlowEvent.direction,
                func.count(),
                func.sum(CashFlowEvent.amount),
            )
            .where(CashFlowEvent.business_date.between(start, end))
            .group_by(CashFlowEvent.location_id, CashFlowEvent.direction)
        )
        per_location: dict[UUID, dict[str, tuple[int, Decimal]]] = defaultdict(dict)
        for location_id, direction, n, amount in self.session.execute(stmt):
            per_location[location_id][direction] = (n, self._money(amount))

        zero = (0, Decimal("0.00"))
        result = {}
        for location_id, totals in per_location.items():
            in_count, inflow = totals.get(CashFlowDirection.IN.value, zero)
            out_count, outflow = totals.get(CashFlowDirection.OUT.value, zero)
            result[location_id] = CashFlowTotals(
                inflow=inflow,
                inflow_count=in_count,
                outflow=outflow,
                outflow_count=out_count,
            )
        return result

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def consumption_records(
        self,
        contract_id: UUID | None = None,
        location_id: UUID | None = None,
        teacher_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
        include_revoked: bool = False,
    ) -> list[ConsumptionInfo]:
        stmt = select(ConsumptionRecord).order_by(
            ConsumptionRecord.session_date, ConsumptionRecord.record_no,
        )
        if contract_id is not None:
            stmt = stmt.where(ConsumptionRecord.contract_id == contract_id)
        if location_id is not None:
            stmt = stmt.where(ConsumptionRecord.location_id == location_id)
        if teacher_id is not None:
            stmt = stmt.where(ConsumptionRecord.teacher_id == teacher_id)
        if start is not None:
            stmt = stmt.where(ConsumptionRecord.session_date >= start)
        if end is not None:
            stmt = stmt.where(ConsumptionRecord.session_date <= end)
        if not include_revoked:
            stmt = stmt.where(ConsumptionRecord.status == ConsumptionStatus.NORMAL.value)
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def revenue_totals(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> RevenueTotals:
        """Recognized revenue from NORMAL consumption records in the date range."""
        stmt = select(
            func.count(ConsumptionRecord.id),
            func.sum(ConsumptionRecord.lesson_count),
            func.sum(ConsumptionRecord.amount),
        ).where(
            ConsumptionRecord.session_date.between(start, end),
            ConsumptionRecord.status == ConsumptionStatus.NORMAL.value,
        )
        if location_id is not None:
            stmt = stmt.where(ConsumptionRecord.location_id == location_id)
        count, lessons, amount = self.session.execute(stmt).one()
        return RevenueTotals(
            amount=self._money(amount),
            lessons=int(lessons or 0),
            record_count=int(count or 0),
        )

    def revenue_by_type(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> dict[str, RevenueTotals]:
        stmt = (
            select(
                ConsumptionRecord.consumption_type,
                func.count(ConsumptionRecord.id),
                func.sum(ConsumptionRecord.lesson_count),
                func.sum(ConsumptionRecord.amount),
            )
            .where(
                ConsumptionRecord.session_date.between(start, end),
                ConsumptionRecord.status == ConsumptionStatus.NORMAL.value,
            )
            .group_by(ConsumptionRecord.consumption_type)
        )
        if location_id is not None:
            stmt = stmt.where(ConsumptionRecord.location_id == location_id)
        return {
            ctype: RevenueTotals(
                amount=self._money(amount),
                lessons=int(lessons or 0),
                record_count=int(n),
            )
            for ctype, n, lessons, amount in self.session.execute(stmt)
        }

    def revenue_by_teacher(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> list[TeacherTotals]:
        """Per-teacher NORMAL consumption totals, most lessons first."""
        stmt = (
            select(
                ConsumptionRecord.teacher_id,
                func.count(ConsumptionRecord.id),
                func.sum(ConsumptionRecord.lesson_count),
                func.sum(ConsumptionRecord.amount),
            )
            .where(
                ConsumptionRecord.session_date.between(start, end),
                ConsumptionRecord.status == ConsumptionStatus.NORMAL.value,
                ConsumptionRecord.teacher_id.is_not(None),
            )
            .group_by(ConsumptionRecord.teacher_id)
        )
        if location_id is not None:
            stmt = stmt.where(ConsumptionRecord.location_id == location_id)
        rows = [
            TeacherTotals(
                teacher_id=teacher_id,
                lessons=int(lessons or 0),
                amount=self._money(amount),
                record_count=int(n),
            )
            for teacher_id, n, lessons, amount in self.session.execute(stmt)
        ]
        return sorted(rows, key=lambda r: (-r.lessons, str(r.teacher_id)))
