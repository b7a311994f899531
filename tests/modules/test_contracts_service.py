"""
ContractService tests.

Covers signing (contract + signing payment in one transaction), top-up
payments, lookups and the stored-invariant audit.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from prepaid_kernel.domain.dtos import ContractStatus, PaymentMethod, PaymentType
from prepaid_kernel.exceptions import InvalidAmountError, NotFoundError


class TestSign:
    def test_sign_pays_in_full_by_default(self, signed_contract):
        contract = signed_contract()
        assert contract.status == ContractStatus.ACTIVE
        assert contract.paid_amount == Decimal("4800.00")
        assert contract.unearned == Decimal("4800.00")
        assert contract.outstanding_amount == Decimal("0.00")

    def test_sign_with_deposit(self, signed_contract, contract_service):
        contract = signed_contract(amount=Decimal("1000"))
        assert contract.paid_amount == Decimal("1000.00")
        assert contract.unearned == Decimal("4800.00")

        payments = contract_service.payments(contract.id)
        assert [p.payment_type for p in payments] == [PaymentType.SIGN]

    def test_failed_sign_leaves_nothing_behind(self, signed_contract, contract_service):
        with pytest.raises(InvalidAmountError):
            signed_contract(amount=Decimal("5000"))
        assert contract_service.statistics().contract_count == 0

    def test_sign_logs(self, signed_contract, captured_logs):
        contract = signed_contract()
        signed = [r for r in captured_logs() if r["message"] == "contract_signed"]
        assert signed[0]["contract_no"] == contract.contract_no


class TestPayments:
    def test_top_up(self, signed_contract, contract_service, test_actor_id):
        contract = signed_contract(amount=Decimal("1000"))
        contract_service.add_payment(
            contract.id, Decimal("3800"), PaymentMethod.BANK, test_actor_id,
            transaction_ref="BANK-778",
        )
        after = contract_service.get(contract.id)
        assert after.paid_amount == Decimal("4800.00")
        assert after.unearned == Decimal("4800.00")

        payments = contract_service.payments(contract.id)
        assert [p.amount for p in payments] == [Decimal("1000.00"), Decimal("3800.00")]
        assert payments[1].transaction_ref == "BANK-778"

    def test_open_then_pay(
        self, contract_service, customer, package, location, test_actor_id,
    ):
        contract = contract_service.open(customer.id, package.id, location.id, test_actor_id)
        assert contract.unearned == Decimal("0.00")
        contract_service.add_payment(contract.id, Decimal("100"), PaymentMethod.CASH, test_actor_id)
        assert contract_service.get(contract.id).unearned == Decimal("4800.00")

    def test_payments_for_unknown_contract(self, contract_service):
        with pytest.raises(NotFoundError):
            contract_service.payments(uuid4())


class TestQueries:
    def test_get_by_no(self, signed_contract, contract_service):
        contract = signed_contract()
        assert contract_service.get_by_no(contract.contract_no).id == contract.id
        assert contract_service.get_by_no("HT19990101001") is None

    def test_statistics_by_location(self, signed_contract, contract_service, location, other_location):
        signed_contract()
        signed_contract(location_id=other_location.id)
        stats = contract_service.statistics(location.id)
        assert stats.contract_count == 1
        assert stats.total_contract_value == Decimal("4800.00")
        assert contract_service.statistics().contract_count == 2

    def test_audit_invariants_clean(self, signed_contract, contract_service):
        signed_contract()
        assert contract_service.audit_invariants() == []
