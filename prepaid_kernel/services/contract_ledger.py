"""
Contract Ledger (``prepaid_kernel.services.contract_ledger``).

Responsibility:
    Owns the per-contract invariants (paid amount, used/remaining lessons,
    unearned balance, status) and exposes the only legal mutation
    primitives: create_contract, apply_payment, consume, revoke_consumption,
    terminate.  The Consumption Engine and Refund Workflow call these; the
    ledger never calls them back.

Architecture position:
    Kernel > Services.  Flush-only: module services own commit/rollback
    (``run_in_transaction``), so a ledger call and the caller's own writes
    land in one transaction.

Invariants enforced:
    - used_lessons + remain_lessons == total_lessons.
    - unearned == amount_for_lessons(unit_price, remain_lessons) within one
      cent for funded contracts; 0 before the first payment.
    - unearned >= 0 and remain_lessons >= 0.
    - Status edges: ACTIVE->COMPLETED, COMPLETED->ACTIVE, ACTIVE/COMPLETED->
      TERMINATED.  Nothing leaves TERMINATED.
    Every mutating call loads the contract with SELECT ... FOR UPDATE and the
    model's version column rejects writes from a stale copy.  Invariants are
    checked before flush; a violation raises LedgerInvariantError and the
    caller's rollback discards the partial change.

Failure modes:
    - NotFoundError, InvalidStateError, InsufficientBalanceError,
      InvalidAmountError as documented per method.

Audit relevance:
    Every mutation writes an AuditEvent in the same transaction.  Consumption
    records keep before/after snapshots so a revocation restores exactly what
    the consumption took.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from prepaid_kernel.domain.clock import Clock, SystemClock
from prepaid_kernel.domain.dtos import (
    CashFlowDirection,
    CashFlowSource,
    ConsumptionInfo,
    ConsumptionStatus,
    ConsumptionType,
    ContractInfo,
    ContractStatus,
    PaymentInfo,
    PaymentMethod,
    PaymentType,
)
from prepaid_kernel.domain.ledger_rules import (
    expected_unearned,
    invariant_violations,
    is_legal_transition,
)
from prepaid_kernel.domain.money import (
    add,
    amount_for_lessons,
    divide_unit_price,
    subtract,
    to_money,
    within_tolerance,
)
from prepaid_kernel.domain.numbering import NumberPrefix
from prepaid_kernel.domain.reference import CatalogPort, DirectoryPort
from prepaid_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStateError,
    LedgerInvariantError,
    NotFoundError,
)
from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.models.audit_event import AuditAction
from prepaid_kernel.models.cash_flow import CashFlowEvent
from prepaid_kernel.models.consumption import ConsumptionRecord
from prepaid_kernel.models.contract import Contract, PaymentRecord
from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_kernel.services.sequence_service import SequenceService
from prepaid_kernel.utils.hashing import to_json_document

logger = get_logger("services.contract_ledger")


class ContractLedger:
    """
    Invariant-preserving mutations on prepaid contracts.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT validate teachers or rosters (Consumption Engine does).
        - Does NOT decide refund amounts (Refund Workflow does).
    """

    def __init__(
        self,
        session: Session,
        catalog: CatalogPort,
        directory: DirectoryPort | None = None,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._catalog = catalog
        self._directory = directory
        self._clock = clock or SystemClock()
        self._sequence = SequenceService(session)
        self._auditor = auditor or AuditorService(session, self._clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_contract(self, contract_id: UUID) -> ContractInfo:
        contract = self._session.get(Contract, contract_id)
        if contract is None:
            raise NotFoundError("Contract", str(contract_id))
        return contract.to_dto()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_contract(
        self,
        customer_id: UUID,
        package_id: UUID,
        location_id: UUID,
        actor_id: UUID,
        discount: Decimal | int | str = Decimal("0"),
        start_date: date | None = None,
        remark: str | None = None,
    ) -> ContractInfo:
        """
        Open a contract for a catalog package.

        The new contract is ACTIVE with every lesson remaining, but carries no
        liability until the first payment (``apply_payment``) is applied.

        Raises:
            NotFoundError: unknown package, customer or location.
            InvalidStateError: package off sale or location inactive.
            InvalidAmountError: discount negative or above the package price.
        """
        package = self._catalog.get_package(package_id)
        if package is None:
            raise NotFoundError("Package", str(package_id))
        if not package.on_sale:
            raise InvalidStateError(
                "Package", str(package_id), "off_sale",
                f"Package {package.name} is not on sale",
            )
        customer = self._catalog.get_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer", str(customer_id))
        location_snapshot = None
        if self._directory is not None:
            location = self._directory.get_location(location_id)
            if location is None:
                raise NotFoundError("Location", str(location_id))
            if not location.active:
                raise InvalidStateError("Location", str(location_id), "inactive")
            location_snapshot = {"id": str(location.id), "name": location.name}

        discount = to_money(discount)
        original_price = to_money(package.total_price)
        if discount < 0:
            raise InvalidAmountError("discount", discount, "cannot be negative")
        if discount > original_price:
            raise InvalidAmountError(
                "discount", discount, f"exceeds package price {original_price}",
            )

        contract_value = subtract(original_price, discount)
        unit_price = divide_unit_price(contract_value, package.total_lessons)
        now = self._clock.now()
        start = start_date or now.date()

        contract = Contract(
            id=uuid4(),
            contract_no=self._sequence.next_business_number(NumberPrefix.CONTRACT, now.date()),
            customer_id=customer_id,
            location_id=location_id,
            package_id=package_id,
            original_price=original_price,
            discount=discount,
            contract_value=contract_value,
            paid_amount=Decimal("0.00"),
            unit_price=unit_price,
            total_lessons=package.total_lessons,
            used_lessons=0,
            remain_lessons=package.total_lessons,
            unearned=Decimal("0.00"),
            start_date=start,
            end_date=start + timedelta(days=package.validity_days),
            status=ContractStatus.ACTIVE.value,
            signed_at=now,
            released_lessons=0,
            snapshot=to_json_document({
                "package": package.snapshot(),
                "customer": customer.snapshot(),
                "location": location_snapshot,
            }),
            remark=remark,
            created_by_id=actor_id,
        )
        self.check_invariants(contract)
        self._session.add(contract)
        self._session.flush()

        self._auditor.record(
            "Contract", contract.id, AuditAction.CONTRACT_CREATED, actor_id,
            {
                "contract_no": contract.contract_no,
                "package_id": package_id,
                "contract_value": contract_value,
                "unit_price": unit_price,
                "total_lessons": package.total_lessons,
            },
        )
        logger.info(
            "contract_created",
            extra={
                "contract_id": str(contract.id),
                "contract_no": contract.contract_no,
                "contract_value": str(contract_value),
                "unit_price": str(unit_price),
                "total_lessons": package.total_lessons,
            },
        )
        return contract.to_dto()

    def apply_payment(
        self,
        contract_id: UUID,
        amount: Decimal | int | str,
        method: PaymentMethod,
        actor_id: UUID,
        payment_type: PaymentType = PaymentType.INSTALLMENT,
        transaction_ref: str | None = None,
        remark: str | None = None,
    ) -> PaymentInfo:
        """
        Record money received against a contract.

        The first payment on an unfunded contract recognizes the liability:
        ``unearned = unit_price * remain_lessons``.  Later payments only
        raise ``paid_amount``.  An inflow CashFlowEvent is written alongside
        the PaymentRecord.

        Raises:
            InvalidStateError: contract is TERMINATED.
            InvalidAmountError: amount not positive or above the outstanding
                balance (contract_value - paid_amount).
        """
        amount = to_money(amount)
        contract = self._lock_contract(contract_id)
        if contract.is_terminated:
            raise InvalidStateError("Contract", str(contract_id), contract.status)
        if amount <= 0:
            raise InvalidAmountError("amount", amount, "must be positive")
        outstanding = subtract(contract.contract_value, contract.paid_amount)
        if amount > outstanding:
            raise InvalidAmountError(
                "amount", amount, f"exceeds outstanding balance {outstanding}",
            )

        now = self._clock.now()
        payment_no = self._sequence.next_business_number(NumberPrefix.PAYMENT, now.date())

        first_payment = contract.paid_amount == 0
        contract.paid_amount = add(contract.paid_amount, amount)
        if first_payment and contract.remain_lessons > 0:
            contract.unearned = amount_for_lessons(contract.unit_price, contract.remain_lessons)
        contract.touched_by(actor_id)

        payment = PaymentRecord(
            id=uuid4(),
            payment_no=payment_no,
            contract_id=contract.id,
            location_id=contract.location_id,
            amount=amount,
            method=PaymentMethod(method).value,
            payment_type=PaymentType(payment_type).value,
            paid_at=now,
            transaction_ref=transaction_ref,
            remark=remark,
            created_by_id=actor_id,
        )
        cash_flow = CashFlowEvent(
            direction=CashFlowDirection.IN.value,
            amount=amount,
            location_id=contract.location_id,
            contract_id=contract.id,
            source_type=CashFlowSource.PAYMENT.value,
            source_id=payment.id,
            method=payment.method,
            occurred_at=now,
            business_date=now.date(),
            created_by_id=actor_id,
        )
        self.check_invariants(contract)
        self._session.add_all([payment, cash_flow])
        self._session.flush()

        self._auditor.record(
            "Contract", contract.id, AuditAction.PAYMENT_APPLIED, actor_id,
            {
                "payment_no": payment.payment_no,
                "amount": amount,
                "method": payment.method,
                "payment_type": payment.payment_type,
                "paid_amount": contract.paid_amount,
                "unearned": contract.unearned,
                "liability_recognized": first_payment,
            },
        )
        logger.info(
            "contract_payment_applied",
            extra={
                "contract_id": str(contract.id),
                "payment_no": payment.payment_no,
                "amount": str(amount),
                "paid_amount": str(contract.paid_amount),
                "unearned": str(contract.unearned),
                "liability_recognized": first_payment,
            },
        )
        return payment.to_dto()

    def consume(
        self,
        contract_id: UUID,
        lesson_count: int,
        actor_id: UUID,
        teacher_id: UUID | None = None,
        session_date: date | None = None,
        consumption_type: ConsumptionType = ConsumptionType.NORMAL,
        remark: str | None = None,
    ) -> ConsumptionInfo:
        """
        Convert ``lesson_count`` lessons of liability into revenue.

        The booked amount is ``before_unearned - amount_for_lessons(unit_price,
        after_remain)``, so the stored balance always equals the rounded
        product and the last consumption recognizes any residual cents.  The
        difference from the nominal ``unit_price * lesson_count`` is stored as
        ``rounding_adjustment``.

        Raises:
            InvalidAmountError: lesson_count is not positive.
            InvalidStateError: contract not ACTIVE or not yet funded.
            InsufficientBalanceError: lesson_count > remain_lessons.
        """
        if lesson_count <= 0:
            raise InvalidAmountError("lesson_count", lesson_count, "must be positive")
        contract = self._lock_contract(contract_id)
        if not contract.is_active:
            raise InvalidStateError("Contract", str(contract_id), contract.status)
        if not contract.is_funded:
            raise InvalidStateError(
                "Contract", str(contract_id), contract.status,
                f"Contract {contract.contract_no} has no payment applied",
            )
        if lesson_count > contract.remain_lessons:
            raise InsufficientBalanceError(
                str(contract_id), lesson_count, contract.remain_lessons,
            )

        now = self._clock.now()
        record_no = self._sequence.next_business_number(NumberPrefix.CONSUMPTION, now.date())

        before_remain = contract.remain_lessons
        before_unearned = contract.unearned
        after_remain = before_remain - lesson_count
        after_unearned = amount_for_lessons(contract.unit_price, after_remain)
        amount = subtract(before_unearned, after_unearned)
        nominal = amount_for_lessons(contract.unit_price, lesson_count)

        contract.used_lessons += lesson_count
        contract.remain_lessons = after_remain
        contract.unearned = after_unearned
        if after_remain == 0:
            self._set_status(contract, ContractStatus.COMPLETED)
        contract.touched_by(actor_id)

        record = ConsumptionRecord(
            id=uuid4(),
            record_no=record_no,
            contract_id=contract.id,
            location_id=contract.location_id,
            teacher_id=teacher_id,
            session_date=session_date or now.date(),
            consumption_type=ConsumptionType(consumption_type).value,
            lesson_count=lesson_count,
            unit_price=contract.unit_price,
            amount=amount,
            rounding_adjustment=subtract(amount, nominal),
            before_remain=before_remain,
            after_remain=after_remain,
            before_unearned=before_unearned,
            after_unearned=after_unearned,
            status=ConsumptionStatus.NORMAL.value,
            recorded_at=now,
            remark=remark,
            created_by_id=actor_id,
        )
        self.check_invariants(contract)
        self._session.add(record)
        self._session.flush()

        self._auditor.record(
            "Contract", contract.id, AuditAction.LESSON_CONSUMED, actor_id,
            {
                "record_no": record.record_no,
                "consumption_type": record.consumption_type,
                "lesson_count": lesson_count,
                "amount": amount,
                "before_remain": before_remain,
                "after_remain": after_remain,
                "status": contract.status,
            },
        )
        logger.info(
            "lesson_consumed",
            extra={
                "contract_id": str(contract.id),
                "record_no": record.record_no,
                "lesson_count": lesson_count,
                "amount": str(amount),
                "rounding_adjustment": str(record.rounding_adjustment),
                "remain_lessons": after_remain,
                "unearned": str(after_unearned),
            },
        )
        return record.to_dto()

    def revoke_consumption(
        self,
        record_id: UUID,
        reason: str,
        actor_id: UUID,
    ) -> ConsumptionInfo:
        """
        Reverse a consumption by its stored deltas.

        Restores ``before_remain - after_remain`` lessons and
        ``before_unearned - after_unearned`` of liability, whatever happened
        to the contract in between.  A COMPLETED contract becomes ACTIVE.
        If other revocations have pushed the balance more than one cent away
        from ``unit_price * remain_lessons``, the balance is reconciled and
        the residue logged.

        Raises:
            NotFoundError: unknown record.
            InvalidStateError: record already REVOKED or contract TERMINATED.
        """
        record = self._session.execute(
            select(ConsumptionRecord)
            .where(ConsumptionRecord.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise NotFoundError("ConsumptionRecord", str(record_id))
        if record.is_revoked:
            raise InvalidStateError("ConsumptionRecord", str(record_id), record.status)

        contract = self._lock_contract(record.contract_id)
        if contract.is_terminated:
            raise InvalidStateError(
                "Contract", str(contract.id), contract.status,
                f"Contract {contract.contract_no} is terminated; "
                f"consumption {record.record_no} cannot be revoked",
            )

        lessons = record.before_remain - record.after_remain
        restored = subtract(record.before_unearned, record.after_unearned)
        contract.remain_lessons += lessons
        contract.used_lessons -= lessons
        contract.unearned = add(contract.unearned, restored)

        expected = amount_for_lessons(contract.unit_price, contract.remain_lessons)
        if not within_tolerance(contract.unearned, expected):
            logger.warning(
                "unearned_rounding_reconciled",
                extra={
                    "contract_id": str(contract.id),
                    "unearned": str(contract.unearned),
                    "expected": str(expected),
                    "residue": str(subtract(contract.unearned, expected)),
                },
            )
            contract.unearned = expected

        if contract.status == ContractStatus.COMPLETED.value and contract.remain_lessons > 0:
            self._set_status(contract, ContractStatus.ACTIVE)
        contract.touched_by(actor_id)

        now = self._clock.now()
        record.status = ConsumptionStatus.REVOKED.value
        record.revoke_reason = reason
        record.revoked_at = now
        record.revoked_by_id = actor_id
        record.touched_by(actor_id)

        self.check_invariants(contract)
        self._session.flush()

        self._auditor.record(
            "Contract", contract.id, AuditAction.CONSUMPTION_REVOKED, actor_id,
            {
                "record_no": record.record_no,
                "lesson_count": lessons,
                "restored_unearned": restored,
                "reason": reason,
                "status": contract.status,
            },
        )
        logger.info(
            "consumption_revoked",
            extra={
                "contract_id": str(contract.id),
                "record_no": record.record_no,
                "lesson_count": lessons,
                "restored_unearned": str(restored),
                "remain_lessons": contract.remain_lessons,
            },
        )
        return record.to_dto()

    def terminate(self, contract_id: UUID, actor_id: UUID) -> ContractInfo:
        """
        Close a contract after a completed refund.

        Remaining lessons move into ``used_lessons`` (and are counted in
        ``released_lessons``), the unearned balance drops to zero and the
        status becomes TERMINATED.  Terminating a TERMINATED contract
        returns its current state unchanged.
        """
        contract = self._lock_contract(contract_id)
        if contract.is_terminated:
            logger.info(
                "contract_terminate_noop",
                extra={"contract_id": str(contract.id), "contract_no": contract.contract_no},
            )
            return contract.to_dto()

        released_lessons = contract.remain_lessons
        released_unearned = contract.unearned
        contract.released_lessons = released_lessons
        contract.used_lessons = contract.total_lessons
        contract.remain_lessons = 0
        contract.unearned = Decimal("0.00")
        self._set_status(contract, ContractStatus.TERMINATED)
        contract.terminated_at = self._clock.now()
        contract.touched_by(actor_id)

        self.check_invariants(contract)
        self._session.flush()

        self._auditor.record(
            "Contract", contract.id, AuditAction.CONTRACT_TERMINATED, actor_id,
            {
                "released_lessons": released_lessons,
                "released_unearned": released_unearned,
            },
        )
        logger.info(
            "contract_terminated",
            extra={
                "contract_id": str(contract.id),
                "contract_no": contract.contract_no,
                "released_lessons": released_lessons,
                "released_unearned": str(released_unearned),
            },
        )
        return contract.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_contract(self, contract_id: UUID) -> Contract:
        contract = self._session.execute(
            select(Contract)
            .where(Contract.id == contract_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if contract is None:
            raise NotFoundError("Contract", str(contract_id))
        return contract

    def _set_status(self, contract: Contract, target: ContractStatus) -> None:
        current = ContractStatus(contract.status)
        if not is_legal_transition(current, target):
            raise InvalidStateError(
                "Contract", str(contract.id), current.value,
                f"Contract {contract.contract_no}: {current.value} -> {target.value} "
                f"is not a legal transition",
            )
        contract.status = target.value

    def check_invariants(self, contract: Contract) -> None:
        """Raise LedgerInvariantError if ``contract`` breaks a ledger invariant."""
        violations = invariant_violations(
            total_lessons=contract.total_lessons,
            used_lessons=contract.used_lessons,
            remain_lessons=contract.remain_lessons,
            unit_price=contract.unit_price,
            unearned=contract.unearned,
            paid_amount=contract.paid_amount,
            status=ContractStatus(contract.status),
        )
        if violations:
            logger.error(
                "contract_invariant_violated",
                extra={
                    "contract_id": str(contract.id),
                    "violations": violations,
                    "expected_unearned": str(expected_unearned(
                        contract.unit_price,
                        contract.remain_lessons,
                        contract.paid_amount,
                        ContractStatus(contract.status),
                    )),
                },
            )
            raise LedgerInvariantError(str(contract.id), contract.status, violations)
