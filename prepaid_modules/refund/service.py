"""
prepaid_modules.refund.service
==============================

Responsibility:
    The refund workflow: quote, request, approve or reject, complete
    (payout), cancel, plus refund statistics and per-location refund rates.

Architecture:
    Module layer.  Owns transactions via ``run_in_transaction``.  Legal
    status changes come from ``REFUND_WORKFLOW``; the only ledger mutation
    is ``ContractLedger.terminate`` on completion.

Invariants enforced:
    - At most one PENDING or APPROVED case per contract (service check plus
      a partial unique index; a losing concurrent insert becomes
      ConflictingRequestError).
    - Approved payable stays within ``0 <= payable <= refundable``.
    - Completion marks the case COMPLETED, terminates the contract and
      writes one outflow cash flow event keyed by the case id, in one
      transaction.

Failure modes:
    - InvalidStateError: contract not ACTIVE or not funded.
    - InvalidAmountError: negative deduction, deduction above refundable,
      adjusted payable out of range.
    - ConflictingRequestError: an open case already exists.
    - InvalidTransitionError: action not declared for the case's status.

Audit relevance:
    Every transition is audited.  The case snapshot freezes the contract
    state and the risk assessment at request time.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from prepaid_engines.refund_risk import RefundRiskAssessor, RiskAssessment, rate_level
from prepaid_kernel.db.engine import run_in_transaction
from prepaid_kernel.domain.clock import Clock, SystemClock
from prepaid_kernel.domain.dtos import (
    CashFlowDirection,
    CashFlowSource,
    ContractInfo,
    ContractStatus,
    PaymentMethod,
)
from prepaid_kernel.domain.money import amount_for_lessons, ratio, subtract, to_money
from prepaid_kernel.domain.numbering import NumberPrefix
from prepaid_kernel.domain.reference import CatalogPort, DirectoryPort
from prepaid_kernel.exceptions import (
    ConflictingRequestError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)
from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.models.audit_event import AuditAction
from prepaid_kernel.models.cash_flow import CashFlowEvent
from prepaid_kernel.selectors.ledger_selector import LedgerSelector
from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_kernel.services.contract_ledger import ContractLedger
from prepaid_kernel.services.notifications import LedgerNotification, NotificationDispatcher
from prepaid_kernel.services.sequence_service import SequenceService
from prepaid_kernel.utils.hashing import to_json_document
from prepaid_modules.refund.config import RefundConfig
from prepaid_modules.refund.models import (
    OPEN_REFUND_STATUSES,
    RefundBreakdown,
    RefundCaseInfo,
    RefundQuote,
    RefundRateRow,
    RefundStatistics,
    RefundStatus,
    RefundType,
)
from prepaid_modules.refund.orm import RefundCaseModel
from prepaid_modules.refund.workflows import (
    CONTRACT_NOT_TERMINATED,
    PAYABLE_WITHIN_REFUNDABLE,
    REFUND_WORKFLOW,
)

logger = get_logger("modules.refund.service")


class RefundService:
    """
    Refund workflow over the Contract Ledger.

    Non-goals:
        - Does NOT move money; ``complete`` records a payout made elsewhere.
        - Risk assessment is advisory and never blocks a request.
    """

    def __init__(
        self,
        session: Session,
        catalog: CatalogPort,
        directory: DirectoryPort | None = None,
        clock: Clock | None = None,
        config: RefundConfig | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or RefundConfig.with_defaults()
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._auditor = AuditorService(session, self._clock)
        self._ledger = ContractLedger(session, catalog, directory, self._clock, self._auditor)
        self._sequence = SequenceService(session)
        self._selector = LedgerSelector(session)
        self._assessor = RefundRiskAssessor(self._config.thresholds())

    # =========================================================================
    # Workflow
    # =========================================================================

    def preview(
        self,
        contract_id: UUID,
        deduction: Decimal | int | str = Decimal("0"),
    ) -> RefundQuote:
        """Quote a refund without recording anything."""
        return self._quote(self._ledger.get_contract(contract_id), deduction)

    def request(
        self,
        contract_id: UUID,
        reason: str,
        actor_id: UUID,
        deduction: Decimal | int | str = Decimal("0"),
        refund_type: RefundType = RefundType.NORMAL,
    ) -> RefundCaseInfo:
        def op() -> RefundCaseInfo:
            contract = self._ledger.get_contract(contract_id)
            quote = self._quote(contract, deduction)
            existing = self._open_case_for(contract_id)
            if existing is not None:
                raise ConflictingRequestError(str(contract_id), str(existing.id))

            now = self._clock.now()
            case = RefundCaseModel(
                id=uuid4(),
                refund_no=self._sequence.next_business_number(NumberPrefix.REFUND, now.date()),
                contract_id=contract.id,
                location_id=contract.location_id,
                refund_type=RefundType(refund_type).value,
                status=REFUND_WORKFLOW.initial_state,
                remain_lessons=quote.remain_lessons,
                unit_price=quote.unit_price,
                refundable_amount=quote.refundable_amount,
                deduction=quote.deduction,
                payable_amount=quote.payable_amount,
                reason=reason,
                requested_at=now,
                snapshot=to_json_document({
                    "contract": {
                        "contract_no": contract.contract_no,
                        "status": contract.status.value,
                        "paid_amount": contract.paid_amount,
                        "used_lessons": contract.used_lessons,
                        "remain_lessons": contract.remain_lessons,
                        "unearned": contract.unearned,
                        "version": contract.version,
                    },
                    "risk": quote.risk.to_snapshot(),
                }),
                created_by_id=actor_id,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(case)
                    self._session.flush()
            except IntegrityError as exc:
                raise ConflictingRequestError(str(contract_id)) from exc

            self._auditor.record(
                "RefundCase", case.id, AuditAction.REFUND_REQUESTED, actor_id,
                {
                    "refund_no": case.refund_no,
                    "contract_id": contract.id,
                    "refundable_amount": case.refundable_amount,
                    "deduction": case.deduction,
                    "payable_amount": case.payable_amount,
                    "risk_level": quote.risk.level.value,
                },
            )
            logger.info(
                "refund_requested",
                extra={
                    "refund_no": case.refund_no,
                    "contract_id": str(contract.id),
                    "payable_amount": str(case.payable_amount),
                    "risk_level": quote.risk.level.value,
                    "risk_passed": quote.risk.passed,
                },
            )
            return case.to_dto()

        case = self._run(op, "refund.request")
        self._publish("refund.requested", case, actor_id)
        return case

    def approve(
        self,
        case_id: UUID,
        approved: bool,
        actor_id: UUID,
        remark: str | None = None,
        adjusted_amount: Decimal | int | str | None = None,
    ) -> RefundCaseInfo:
        """
        Approve or reject a PENDING case.

        On approval ``adjusted_amount`` may replace the payable amount; the
        deduction is recomputed as ``refundable - adjusted``.
        """

        def op() -> RefundCaseInfo:
            case = self._lock_case(case_id)
            action = "approve" if approved else "reject"
            payable = case.payable_amount if adjusted_amount is None else to_money(adjusted_amount)
            transition = REFUND_WORKFLOW.require_transition(
                case.status, action, str(case.id),
                guards={
                    PAYABLE_WITHIN_REFUNDABLE.name: lambda: _require_payable_within_refundable(
                        case, payable,
                    ),
                },
            )

            if adjusted_amount is not None:
                if not approved:
                    raise InvalidAmountError(
                        "adjusted_amount", adjusted_amount, "only applies to an approval",
                    )
                case.payable_amount = payable
                case.deduction = subtract(case.refundable_amount, payable)

            case.status = transition.to_state
            case.approved_by_id = actor_id
            case.approved_at = self._clock.now()
            case.approval_remark = remark
            case.touched_by(actor_id)
            self._session.flush()

            self._auditor.record(
                "RefundCase", case.id,
                AuditAction.REFUND_APPROVED if approved else AuditAction.REFUND_REJECTED,
                actor_id,
                {
                    "refund_no": case.refund_no,
                    "payable_amount": case.payable_amount,
                    "adjusted": adjusted_amount is not None,
                    "remark": remark,
                },
            )
            logger.info(
                "refund_approved" if approved else "refund_rejected",
                extra={
                    "refund_no": case.refund_no,
                    "payable_amount": str(case.payable_amount),
                    "adjusted": adjusted_amount is not None,
                },
            )
            return case.to_dto()

        case = self._run(op, "refund.approve")
        self._publish("refund.approved" if approved else "refund.rejected", case, actor_id)
        return case

    def complete(
        self,
        case_id: UUID,
        method: PaymentMethod,
        account: str | None,
        actor_id: UUID,
        transaction_ref: str | None = None,
    ) -> RefundCaseInfo:
        """
        Record the payout of an APPROVED case.

        The contract is terminated and one outflow event is written for the
        payable amount (none when the payable is zero).
        """

        def op() -> RefundCaseInfo:
            case = self._lock_case(case_id)
            contract = self._ledger.get_contract(case.contract_id)
            transition = REFUND_WORKFLOW.require_transition(
                case.status, "complete", str(case.id),
                guards={CONTRACT_NOT_TERMINATED.name: lambda: _require_open_contract(contract)},
            )
            if contract.remain_lessons != case.remain_lessons:
                logger.warning(
                    "refund_quote_stale",
                    extra={
                        "refund_no": case.refund_no,
                        "quoted_remain_lessons": case.remain_lessons,
                        "remain_lessons": contract.remain_lessons,
                    },
                )

            now = self._clock.now()
            case.status = transition.to_state
            case.refund_method = PaymentMethod(method).value
            case.refund_account = account
            case.transaction_ref = transaction_ref
            case.completed_at = now
            case.completed_date = now.date()
            case.touched_by(actor_id)

            self._ledger.terminate(case.contract_id, actor_id)

            if case.payable_amount > 0:
                self._session.add(CashFlowEvent(
                    direction=CashFlowDirection.OUT.value,
                    amount=case.payable_amount,
                    location_id=case.location_id,
                    contract_id=case.contract_id,
                    source_type=CashFlowSource.REFUND.value,
                    source_id=case.id,
                    method=case.refund_method,
                    occurred_at=now,
                    business_date=now.date(),
                    created_by_id=actor_id,
                ))
            self._session.flush()

            self._auditor.record(
                "RefundCase", case.id, AuditAction.REFUND_COMPLETED, actor_id,
                {
                    "refund_no": case.refund_no,
                    "contract_id": case.contract_id,
                    "payable_amount": case.payable_amount,
                    "refund_method": case.refund_method,
                    "transaction_ref": transaction_ref,
                },
            )
            logger.info(
                "refund_completed",
                extra={
                    "refund_no": case.refund_no,
                    "contract_id": str(case.contract_id),
                    "payable_amount": str(case.payable_amount),
                    "refund_method": case.refund_method,
                },
            )
            return case.to_dto()

        case = self._run(op, "refund.complete")
        self._publish("refund.completed", case, actor_id)
        return case

    def cancel(
        self,
        case_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> RefundCaseInfo:
        def op() -> RefundCaseInfo:
            case = self._lock_case(case_id)
            transition = REFUND_WORKFLOW.require_transition(case.status, "cancel", str(case.id))
            case.status = transition.to_state
            case.cancelled_by_id = actor_id
            case.cancelled_at = self._clock.now()
            case.cancel_reason = reason
            case.touched_by(actor_id)
            self._session.flush()

            self._auditor.record(
                "RefundCase", case.id, AuditAction.REFUND_CANCELLED, actor_id,
                {"refund_no": case.refund_no, "reason": reason},
            )
            logger.info("refund_cancelled", extra={"refund_no": case.refund_no})
            return case.to_dto()

        case = self._run(op, "refund.cancel")
        self._publish("refund.cancelled", case, actor_id)
        return case

    # =========================================================================
    # Queries
    # =========================================================================

    def get_case(self, case_id: UUID) -> RefundCaseInfo:
        case = self._session.get(RefundCaseModel, case_id)
        if case is None:
            raise NotFoundError("RefundCase", str(case_id))
        return case.to_dto()

    def list_cases(
        self,
        status: RefundStatus | None = None,
        location_id: UUID | None = None,
        contract_id: UUID | None = None,
    ) -> list[RefundCaseInfo]:
        stmt = select(RefundCaseModel).order_by(RefundCaseModel.requested_at, RefundCaseModel.refund_no)
        if status is not None:
            stmt = stmt.where(RefundCaseModel.status == RefundStatus(status).value)
        if location_id is not None:
            stmt = stmt.where(RefundCaseModel.location_id == location_id)
        if contract_id is not None:
            stmt = stmt.where(RefundCaseModel.contract_id == contract_id)
        return [c.to_dto() for c in self._session.execute(stmt).scalars()]

    def statistics(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> RefundStatistics:
        """Completed refunds whose payout date falls in ``[start, end]``."""
        stmt = select(RefundCaseModel).where(
            RefundCaseModel.status == RefundStatus.COMPLETED.value,
            RefundCaseModel.completed_date.between(start, end),
        )
        if location_id is not None:
            stmt = stmt.where(RefundCaseModel.location_id == location_id)

        by_type: dict[str, list] = defaultdict(lambda: [0, Decimal("0.00")])
        by_location: dict[UUID, list] = defaultdict(lambda: [0, Decimal("0.00")])
        count = 0
        total = Decimal("0.00")
        for case in self._session.execute(stmt).scalars():
            count += 1
            total += case.payable_amount
            for bucket in (by_type[case.refund_type], by_location[case.location_id]):
                bucket[0] += 1
                bucket[1] += case.payable_amount

        return RefundStatistics(
            count=count,
            total_payable=total,
            by_type={k: RefundBreakdown(n, amt) for k, (n, amt) in by_type.items()},
            by_location={k: RefundBreakdown(n, amt) for k, (n, amt) in by_location.items()},
        )

    def refund_rate_report(self, start: date, end: date) -> list[RefundRateRow]:
        """Refund outflow over inflow per location, highest rate first."""
        rows = []
        for location_id, totals in self._selector.cash_flow_by_location(start, end).items():
            rate = ratio(totals.outflow, totals.inflow)
            rows.append(RefundRateRow(
                location_id=location_id,
                inflow=totals.inflow,
                refunded=totals.outflow,
                rate=rate,
                level=rate_level(
                    rate, self._config.report_rate_medium, self._config.report_rate_high,
                ),
            ))
        return sorted(rows, key=lambda r: (-r.rate, str(r.location_id)))

    # =========================================================================
    # Internals
    # =========================================================================

    def _run(self, op, name: str) -> RefundCaseInfo:
        return run_in_transaction(
            self._session, op, name=name, max_attempts=self._config.max_attempts,
        )

    def _quote(self, contract: ContractInfo, deduction: Decimal | int | str) -> RefundQuote:
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidStateError("Contract", str(contract.id), contract.status.value)
        if not contract.is_funded:
            raise InvalidStateError(
                "Contract", str(contract.id), contract.status.value,
                f"Contract {contract.contract_no} has no payment applied",
            )
        deduction = to_money(deduction)
        if deduction < 0:
            raise InvalidAmountError("deduction", deduction, "cannot be negative")
        refundable = amount_for_lessons(contract.unit_price, contract.remain_lessons)
        payable = subtract(refundable, deduction)
        if payable < 0:
            raise InvalidAmountError(
                "deduction", deduction, f"exceeds refundable amount {refundable}",
            )
        return RefundQuote(
            contract_id=contract.id,
            contract_no=contract.contract_no,
            remain_lessons=contract.remain_lessons,
            unit_price=contract.unit_price,
            refundable_amount=refundable,
            deduction=deduction,
            payable_amount=payable,
            risk=self._assess(contract, payable),
        )

    def _assess(self, contract: ContractInfo, payable: Decimal) -> RiskAssessment:
        customer_contracts = self._selector.list_contracts(customer_id=contract.customer_id)
        refunded = sum(1 for c in customer_contracts if c.status == ContractStatus.TERMINATED)
        today = self._clock.today()
        window_start = today - timedelta(days=self._config.location_window_days - 1)
        totals = self._selector.cash_flow_totals(window_start, today, contract.location_id)
        return self._assessor.assess(
            customer_contracts=len(customer_contracts),
            customer_refunds=refunded,
            location_inflow=totals.inflow,
            location_refunds=totals.outflow,
            payable_amount=payable,
        )

    def _open_case_for(self, contract_id: UUID) -> RefundCaseModel | None:
        return self._session.execute(
            select(RefundCaseModel).where(
                RefundCaseModel.contract_id == contract_id,
                RefundCaseModel.status.in_([s.value for s in OPEN_REFUND_STATUSES]),
            )
        ).scalars().first()

    def _lock_case(self, case_id: UUID) -> RefundCaseModel:
        case = self._session.execute(
            select(RefundCaseModel)
            .where(RefundCaseModel.id == case_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if case is None:
            raise NotFoundError("RefundCase", str(case_id))
        return case

    def _publish(self, event_type: str, case: RefundCaseInfo, actor_id: UUID) -> None:
        self._dispatcher.dispatch(LedgerNotification(
            event_type=event_type,
            entity_type="RefundCase",
            entity_id=case.id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload={
                "refund_no": case.refund_no,
                "contract_id": str(case.contract_id),
                "status": case.status.value,
                "payable_amount": str(case.payable_amount),
            },
        ))


def _require_payable_within_refundable(case: RefundCaseModel, payable: Decimal) -> None:
    if payable < 0 or payable > case.refundable_amount:
        raise InvalidAmountError(
            "adjusted_amount", payable,
            f"must be between 0 and refundable {case.refundable_amount}",
        )


def _require_open_contract(contract: ContractInfo) -> None:
    if contract.status == ContractStatus.TERMINATED:
        raise InvalidStateError(
            "Contract", str(contract.id), contract.status.value,
            f"Contract {contract.contract_no} is already terminated",
        )
