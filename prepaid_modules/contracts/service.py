"""
prepaid_modules.contracts.service
=================================

Responsibility:
    Opens contracts and records payments against them, owning the
    transaction boundary around the Contract Ledger.

Architecture:
    Module layer.  Every mutation runs through ``run_in_transaction``:
    commit on success, rollback and re-raise on failure, retry on
    optimistic version conflicts.

Invariants enforced:
    - ``sign`` creates the contract and applies its SIGN payment in one
      transaction, so a signed contract is funded from the moment it is
      visible.

Failure modes:
    - Ledger errors (NotFoundError, InvalidStateError, InvalidAmountError)
      propagate after rollback.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from prepaid_kernel.db.engine import run_in_transaction
from prepaid_kernel.domain.clock import Clock, SystemClock
from prepaid_kernel.domain.dtos import ContractInfo, PaymentInfo, PaymentMethod, PaymentType
from prepaid_kernel.domain.money import to_money
from prepaid_kernel.domain.reference import CatalogPort, DirectoryPort
from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.selectors.ledger_selector import (
    ContractStatistics,
    InvariantViolationRow,
    LedgerSelector,
)
from prepaid_kernel.services.contract_ledger import ContractLedger

logger = get_logger("modules.contracts.service")


class ContractService:
    """
    Contract signing and payments.

    Non-goals:
        - Does NOT consume lessons or refund (sibling modules do).
    """

    def __init__(
        self,
        session: Session,
        catalog: CatalogPort,
        directory: DirectoryPort | None = None,
        clock: Clock | None = None,
        max_attempts: int = 3,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = ContractLedger(session, catalog, directory, self._clock)
        self._selector = LedgerSelector(session)
        self._max_attempts = max_attempts

    def sign(
        self,
        customer_id: UUID,
        package_id: UUID,
        location_id: UUID,
        actor_id: UUID,
        method: PaymentMethod = PaymentMethod.CASH,
        amount: Decimal | int | str | None = None,
        discount: Decimal | int | str = Decimal("0"),
        start_date: date | None = None,
        transaction_ref: str | None = None,
        remark: str | None = None,
    ) -> ContractInfo:
        """
        Open a contract and apply the signing payment.

        ``amount`` defaults to the full contract value.  A free contract
        (value 0) is opened without a payment.
        """

        def op() -> ContractInfo:
            contract = self._ledger.create_contract(
                customer_id=customer_id,
                package_id=package_id,
                location_id=location_id,
                actor_id=actor_id,
                discount=discount,
                start_date=start_date,
                remark=remark,
            )
            paid = contract.contract_value if amount is None else to_money(amount)
            if contract.contract_value > 0 or paid > 0:
                self._ledger.apply_payment(
                    contract.id,
                    paid,
                    method,
                    actor_id,
                    payment_type=PaymentType.SIGN,
                    transaction_ref=transaction_ref,
                )
            return self._ledger.get_contract(contract.id)

        contract = run_in_transaction(
            self._session, op, name="contract.sign", max_attempts=self._max_attempts,
        )
        logger.info(
            "contract_signed",
            extra={
                "contract_id": str(contract.id),
                "contract_no": contract.contract_no,
                "paid_amount": str(contract.paid_amount),
                "unearned": str(contract.unearned),
            },
        )
        return contract

    def open(
        self,
        customer_id: UUID,
        package_id: UUID,
        location_id: UUID,
        actor_id: UUID,
        discount: Decimal | int | str = Decimal("0"),
        start_date: date | None = None,
        remark: str | None = None,
    ) -> ContractInfo:
        """Open an unfunded contract; liability starts with the first payment."""
        return run_in_transaction(
            self._session,
            lambda: self._ledger.create_contract(
                customer_id=customer_id,
                package_id=package_id,
                location_id=location_id,
                actor_id=actor_id,
                discount=discount,
                start_date=start_date,
                remark=remark,
            ),
            name="contract.open",
            max_attempts=self._max_attempts,
        )

    def add_payment(
        self,
        contract_id: UUID,
        amount: Decimal | int | str,
        method: PaymentMethod,
        actor_id: UUID,
        payment_type: PaymentType = PaymentType.INSTALLMENT,
        transaction_ref: str | None = None,
        remark: str | None = None,
    ) -> PaymentInfo:
        return run_in_transaction(
            self._session,
            lambda: self._ledger.apply_payment(
                contract_id,
                amount,
                method,
                actor_id,
                payment_type=payment_type,
                transaction_ref=transaction_ref,
                remark=remark,
            ),
            name="contract.add_payment",
            max_attempts=self._max_attempts,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, contract_id: UUID) -> ContractInfo:
        return self._ledger.get_contract(contract_id)

    def get_by_no(self, contract_no: str) -> ContractInfo | None:
        return self._selector.get_contract_by_no(contract_no)

    def payments(self, contract_id: UUID) -> list[PaymentInfo]:
        self._ledger.get_contract(contract_id)
        return self._selector.payments_for_contract(contract_id)

    def statistics(self, location_id: UUID | None = None) -> ContractStatistics:
        return self._selector.contract_statistics(location_id)

    def audit_invariants(self, location_id: UUID | None = None) -> list[InvariantViolationRow]:
        """Re-check every stored contract; logs a warning when any fails."""
        rows = self._selector.find_invariant_violations(location_id)
        if rows:
            logger.warning(
                "contract_invariant_audit_failed",
                extra={
                    "violation_count": len(rows),
                    "contract_nos": [r.contract_no for r in rows],
                },
            )
        return rows
