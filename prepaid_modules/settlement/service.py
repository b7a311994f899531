"""
prepaid_modules.settlement.service
==================================

Responsibility:
    Closes a business day for one location: totals that day's inflow and
    outflow cash flow events and its NORMAL consumption records, captures
    the location's unearned liability at closing, and stores the result as
    one immutable report.

Architecture:
    Module layer.  Reads through ``LedgerSelector``; writes only its own
    report row and an audit event.  Prior days are never touched.

Invariants enforced:
    - One report per (business_date, location_id).  A pre-check gives the
      common case a clean error; the unique constraint catches a race.

Failure modes:
    - AlreadySettledError on a repeat settlement.
    - NotFoundError when a directory is supplied and the location is unknown.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from prepaid_kernel.db.engine import run_in_transaction
from prepaid_kernel.domain.clock import Clock, SystemClock
from prepaid_kernel.domain.reference import DirectoryPort
from prepaid_kernel.exceptions import AlreadySettledError, NotFoundError
from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.models.audit_event import AuditAction
from prepaid_kernel.selectors.ledger_selector import LedgerSelector
from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_kernel.utils.hashing import to_json_document
from prepaid_modules.settlement.models import SettlementReportInfo, SettlementSummary
from prepaid_modules.settlement.orm import SettlementReportModel

logger = get_logger("modules.settlement.service")


class SettlementService:
    def __init__(
        self,
        session: Session,
        directory: DirectoryPort | None = None,
        clock: Clock | None = None,
        max_attempts: int = 3,
    ):
        self._session = session
        self._directory = directory
        self._clock = clock or SystemClock()
        self._auditor = AuditorService(session, self._clock)
        self._selector = LedgerSelector(session)
        self._max_attempts = max_attempts

    def settle(
        self,
        business_date: date,
        location_id: UUID,
        operator_id: UUID,
    ) -> SettlementReportInfo:
        """
        Close ``business_date`` for ``location_id``.

        Raises:
            AlreadySettledError: the day is already closed for the location.
        """

        def op() -> SettlementReportInfo:
            if self._directory is not None and self._directory.get_location(location_id) is None:
                raise NotFoundError("Location", str(location_id))
            if self._find(business_date, location_id) is not None:
                raise AlreadySettledError(business_date.isoformat(), str(location_id))

            cash = self._selector.cash_flow_totals(business_date, business_date, location_id)
            revenue = self._selector.revenue_totals(business_date, business_date, location_id)
            payments = self._selector.payment_statistics(business_date, business_date, location_id)
            by_type = self._selector.revenue_by_type(business_date, business_date, location_id)
            closing_liability = self._selector.liability_total(location_id)

            report = SettlementReportModel(
                id=uuid4(),
                business_date=business_date,
                location_id=location_id,
                inflow_total=cash.inflow,
                inflow_count=cash.inflow_count,
                outflow_total=cash.outflow,
                outflow_count=cash.outflow_count,
                net_cash_flow=cash.net,
                recognized_revenue=revenue.amount,
                consumption_count=revenue.record_count,
                consumed_lessons=revenue.lessons,
                closing_liability=closing_liability,
                settled_by_id=operator_id,
                settled_at=self._clock.now(),
                snapshot=to_json_document({
                    "inflow_by_method": payments.by_method,
                    "inflow_by_payment_type": payments.by_type,
                    "consumption_by_type": {
                        ctype: {
                            "amount": totals.amount,
                            "lessons": totals.lessons,
                            "records": totals.record_count,
                        }
                        for ctype, totals in by_type.items()
                    },
                    "refund_count": cash.outflow_count,
                }),
                created_by_id=operator_id,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(report)
                    self._session.flush()
            except IntegrityError as exc:
                raise AlreadySettledError(business_date.isoformat(), str(location_id)) from exc

            self._auditor.record(
                "SettlementReport", report.id, AuditAction.SETTLEMENT_CLOSED, operator_id,
                {
                    "business_date": business_date,
                    "location_id": location_id,
                    "net_cash_flow": report.net_cash_flow,
                    "recognized_revenue": report.recognized_revenue,
                    "closing_liability": closing_liability,
                },
            )
            logger.info(
                "settlement_closed",
                extra={
                    "business_date": business_date.isoformat(),
                    "location_id": str(location_id),
                    "inflow_total": str(report.inflow_total),
                    "outflow_total": str(report.outflow_total),
                    "recognized_revenue": str(report.recognized_revenue),
                    "closing_liability": str(closing_liability),
                },
            )
            return report.to_dto()

        return run_in_transaction(
            self._session, op, name="settlement.settle", max_attempts=self._max_attempts,
        )

    def get_report(self, business_date: date, location_id: UUID) -> SettlementReportInfo:
        report = self._find(business_date, location_id)
        if report is None:
            raise NotFoundError("SettlementReport", f"{business_date.isoformat()}/{location_id}")
        return report.to_dto()

    def list_reports(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> SettlementSummary:
        """Reports in ``[start, end]``, newest first, with summed totals."""
        stmt = (
            select(SettlementReportModel)
            .where(SettlementReportModel.business_date.between(start, end))
            .order_by(SettlementReportModel.business_date.desc())
        )
        if location_id is not None:
            stmt = stmt.where(SettlementReportModel.location_id == location_id)
        reports = tuple(r.to_dto() for r in self._session.execute(stmt).scalars())
        return SettlementSummary(
            reports=reports,
            inflow_total=sum((r.inflow_total for r in reports), Decimal("0.00")),
            outflow_total=sum((r.outflow_total for r in reports), Decimal("0.00")),
            net_cash_flow=sum((r.net_cash_flow for r in reports), Decimal("0.00")),
            recognized_revenue=sum((r.recognized_revenue for r in reports), Decimal("0.00")),
            consumed_lessons=sum(r.consumed_lessons for r in reports),
        )

    def _find(self, business_date: date, location_id: UUID) -> SettlementReportModel | None:
        return self._session.execute(
            select(SettlementReportModel).where(
                SettlementReportModel.business_date == business_date,
                SettlementReportModel.location_id == location_id,
            )
        ).scalar_one_or_none()
