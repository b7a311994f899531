"""
ContractLedger tests.

Verifies:
- Contract creation: numbering, discount pricing, unfunded until first payment
- Payments: liability recognition, outstanding-balance guard, inflow cash flow
- Consumption: balance conversion, completion, insufficient balance
- Revocation restores the exact pre-consumption state
- Termination zeroes the balance and is idempotent
- Cent residue lands on the final lesson
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from prepaid_kernel.domain.dtos import (
    CashFlowDirection,
    ConsumptionStatus,
    ContractStatus,
    PaymentMethod,
    PaymentType,
)
from prepaid_kernel.domain.reference import PackageInfo
from prepaid_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStateError,
    LedgerInvariantError,
    NotFoundError,
)
from prepaid_kernel.models.audit_event import AuditAction
from prepaid_kernel.models.contract import Contract


@pytest.fixture
def new_contract(contract_ledger, customer, package, location, test_actor_id):
    def _create(package_id=None, discount=Decimal("0")):
        return contract_ledger.create_contract(
            customer_id=customer.id,
            package_id=package_id or package.id,
            location_id=location.id,
            actor_id=test_actor_id,
            discount=discount,
        )

    return _create


@pytest.fixture
def funded_contract(contract_ledger, new_contract, test_actor_id):
    contract = new_contract()
    contract_ledger.apply_payment(
        contract.id, contract.contract_value, PaymentMethod.CASH, test_actor_id,
        payment_type=PaymentType.SIGN,
    )
    return contract_ledger.get_contract(contract.id)


class TestCreateContract:
    def test_new_contract_is_active_and_unfunded(self, new_contract, deterministic_clock):
        contract = new_contract()
        assert contract.contract_no == "HT20240101001"
        assert contract.status == ContractStatus.ACTIVE
        assert contract.contract_value == Decimal("4800.00")
        assert contract.unit_price == Decimal("100.000000")
        assert contract.remain_lessons == 48
        assert contract.used_lessons == 0
        assert contract.unearned == Decimal("0.00")
        assert contract.paid_amount == Decimal("0.00")
        assert not contract.is_funded
        assert contract.start_date == date(2024, 1, 1)
        assert contract.end_date == date(2024, 1, 1) + timedelta(days=365)

    def test_discount_lowers_unit_price(self, new_contract):
        contract = new_contract(discount=Decimal("480"))
        assert contract.contract_value == Decimal("4320.00")
        assert contract.unit_price == Decimal("90.000000")

    def test_snapshot_captures_package_and_customer(self, new_contract, package, customer):
        contract = new_contract()
        assert contract.snapshot["package"]["name"] == package.name
        assert contract.snapshot["customer"]["name"] == customer.name

    @pytest.mark.parametrize("discount", [Decimal("-1"), Decimal("4800.01")])
    def test_invalid_discount_rejected(self, new_contract, discount):
        with pytest.raises(InvalidAmountError):
            new_contract(discount=discount)

    def test_unknown_package(self, new_contract):
        with pytest.raises(NotFoundError):
            new_contract(package_id=uuid4())

    def test_off_sale_package(self, new_contract, reference_data):
        retired = reference_data.add_package(PackageInfo(
            id=uuid4(), name="Retired", total_lessons=10,
            total_price=Decimal("1000"), validity_days=90, on_sale=False,
        ))
        with pytest.raises(InvalidStateError):
            new_contract(package_id=retired.id)

    def test_unknown_location(self, contract_ledger, customer, package, test_actor_id):
        with pytest.raises(NotFoundError):
            contract_ledger.create_contract(customer.id, package.id, uuid4(), test_actor_id)

    def test_numbers_increase_within_a_day(self, new_contract):
        assert new_contract().contract_no == "HT20240101001"
        assert new_contract().contract_no == "HT20240101002"


class TestApplyPayment:
    def test_first_payment_recognizes_liability(
        self, contract_ledger, new_contract, test_actor_id,
    ):
        contract = new_contract()
        payment = contract_ledger.apply_payment(
            contract.id, Decimal("4800"), PaymentMethod.WECHAT, test_actor_id,
        )
        after = contract_ledger.get_contract(contract.id)
        assert payment.payment_no == "CF20240101001"
        assert after.paid_amount == Decimal("4800.00")
        assert after.unearned == Decimal("4800.00")

    def test_partial_payment_recognizes_full_liability(
        self, contract_ledger, new_contract, test_actor_id,
    ):
        contract = new_contract()
        contract_ledger.apply_payment(contract.id, Decimal("2000"), PaymentMethod.CASH, test_actor_id)
        contract_ledger.apply_payment(contract.id, Decimal("1000"), PaymentMethod.CASH, test_actor_id)
        after = contract_ledger.get_contract(contract.id)
        assert after.paid_amount == Decimal("3000.00")
        assert after.unearned == Decimal("4800.00")
        assert after.outstanding_amount == Decimal("1800.00")

    def test_payment_writes_inflow_cash_flow(
        self, contract_ledger, ledger_selector, new_contract, test_actor_id,
    ):
        contract = new_contract()
        payment = contract_ledger.apply_payment(
            contract.id, Decimal("4800"), PaymentMethod.ALIPAY, test_actor_id,
        )
        flows = ledger_selector.cash_flows(date(2024, 1, 1), date(2024, 1, 1))
        assert len(flows) == 1
        assert flows[0].direction == CashFlowDirection.IN
        assert flows[0].amount == Decimal("4800.00")
        assert flows[0].source_id == payment.id
        assert flows[0].method == "alipay"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("4800.01")])
    def test_invalid_amount_rejected(self, contract_ledger, new_contract, test_actor_id, amount):
        contract = new_contract()
        with pytest.raises(InvalidAmountError):
            contract_ledger.apply_payment(contract.id, amount, PaymentMethod.CASH, test_actor_id)

    def test_float_amount_rejected(self, contract_ledger, new_contract, test_actor_id):
        contract = new_contract()
        with pytest.raises(TypeError):
            contract_ledger.apply_payment(contract.id, 100.5, PaymentMethod.CASH, test_actor_id)

    def test_payment_on_terminated_contract(self, contract_ledger, new_contract, test_actor_id):
        contract = new_contract()
        contract_ledger.apply_payment(contract.id, Decimal("100"), PaymentMethod.CASH, test_actor_id)
        contract_ledger.terminate(contract.id, test_actor_id)
        with pytest.raises(InvalidStateError):
            contract_ledger.apply_payment(contract.id, Decimal("100"), PaymentMethod.CASH, test_actor_id)


class TestConsume:
    def test_consume_converts_liability(self, contract_ledger, funded_contract, test_actor_id):
        record = contract_ledger.consume(funded_contract.id, 10, test_actor_id)
        after = contract_ledger.get_contract(funded_contract.id)

        assert record.record_no == "XK20240101001"
        assert record.amount == Decimal("1000.00")
        assert record.rounding_adjustment == Decimal("0.00")
        assert (record.before_remain, record.after_remain) == (48, 38)
        assert (record.before_unearned, record.after_unearned) == (
            Decimal("4800.00"), Decimal("3800.00"),
        )
        assert after.remain_lessons == 38
        assert after.used_lessons == 10
        assert after.unearned == Decimal("3800.00")

    def test_unfunded_contract_cannot_consume(self, contract_ledger, new_contract, test_actor_id):
        contract = new_contract()
        with pytest.raises(InvalidStateError):
            contract_ledger.consume(contract.id, 1, test_actor_id)

    def test_insufficient_balance(self, contract_ledger, funded_contract, test_actor_id):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            contract_ledger.consume(funded_contract.id, 49, test_actor_id)
        assert exc_info.value.requested == 49
        assert exc_info.value.remain_lessons == 48

    @pytest.mark.parametrize("count", [0, -1])
    def test_non_positive_count(self, contract_ledger, funded_contract, test_actor_id, count):
        with pytest.raises(InvalidAmountError):
            contract_ledger.consume(funded_contract.id, count, test_actor_id)

    def test_last_lesson_completes_contract(self, contract_ledger, funded_contract, test_actor_id):
        contract_ledger.consume(funded_contract.id, 48, test_actor_id)
        after = contract_ledger.get_contract(funded_contract.id)
        assert after.status == ContractStatus.COMPLETED
        assert after.unearned == Decimal("0.00")

        with pytest.raises(InvalidStateError):
            contract_ledger.consume(funded_contract.id, 1, test_actor_id)

    def test_unknown_contract(self, contract_ledger, test_actor_id):
        with pytest.raises(NotFoundError):
            contract_ledger.consume(uuid4(), 1, test_actor_id)


class TestRevokeConsumption:
    def test_revoke_restores_exact_state(self, contract_ledger, funded_contract, test_actor_id):
        before = contract_ledger.get_contract(funded_contract.id)
        record = contract_ledger.consume(funded_contract.id, 5, test_actor_id)
        revoked = contract_ledger.revoke_consumption(record.id, "entered twice", test_actor_id)
        after = contract_ledger.get_contract(funded_contract.id)

        assert revoked.status == ConsumptionStatus.REVOKED
        assert revoked.revoke_reason == "entered twice"
        assert after.remain_lessons == before.remain_lessons
        assert after.used_lessons == before.used_lessons
        assert after.unearned == before.unearned
        assert after.status == before.status

    def test_revoke_reactivates_completed_contract(
        self, contract_ledger, funded_contract, test_actor_id,
    ):
        record = contract_ledger.consume(funded_contract.id, 48, test_actor_id)
        contract_ledger.revoke_consumption(record.id, "wrong student", test_actor_id)
        after = contract_ledger.get_contract(funded_contract.id)
        assert after.status == ContractStatus.ACTIVE
        assert after.remain_lessons == 48
        assert after.unearned == Decimal("4800.00")

    def test_revoke_out_of_order(self, contract_ledger, funded_contract, test_actor_id):
        first = contract_ledger.consume(funded_contract.id, 3, test_actor_id)
        contract_ledger.consume(funded_contract.id, 2, test_actor_id)
        contract_ledger.revoke_consumption(first.id, "correction", test_actor_id)
        after = contract_ledger.get_contract(funded_contract.id)
        assert after.remain_lessons == 46
        assert after.unearned == Decimal("4600.00")

    def test_double_revoke_rejected(self, contract_ledger, funded_contract, test_actor_id):
        record = contract_ledger.consume(funded_contract.id, 1, test_actor_id)
        contract_ledger.revoke_consumption(record.id, "once", test_actor_id)
        with pytest.raises(InvalidStateError):
            contract_ledger.revoke_consumption(record.id, "twice", test_actor_id)

    def test_revoke_after_termination_rejected(
        self, contract_ledger, funded_contract, test_actor_id,
    ):
        record = contract_ledger.consume(funded_contract.id, 1, test_actor_id)
        contract_ledger.terminate(funded_contract.id, test_actor_id)
        with pytest.raises(InvalidStateError):
            contract_ledger.revoke_consumption(record.id, "late", test_actor_id)

    def test_unknown_record(self, contract_ledger, test_actor_id):
        with pytest.raises(NotFoundError):
            contract_ledger.revoke_consumption(uuid4(), "missing", test_actor_id)


class TestTerminate:
    def test_terminate_releases_balance(self, contract_ledger, funded_contract, test_actor_id):
        contract_ledger.consume(funded_contract.id, 10, test_actor_id)
        terminated = contract_ledger.terminate(funded_contract.id, test_actor_id)

        assert terminated.status == ContractStatus.TERMINATED
        assert terminated.remain_lessons == 0
        assert terminated.used_lessons == 48
        assert terminated.released_lessons == 38
        assert terminated.unearned == Decimal("0.00")
        assert terminated.terminated_at is not None

    def test_terminate_is_idempotent(self, contract_ledger, funded_contract, test_actor_id):
        first = contract_ledger.terminate(funded_contract.id, test_actor_id)
        second = contract_ledger.terminate(funded_contract.id, test_actor_id)
        assert second.released_lessons == first.released_lessons
        assert second.version == first.version

    def test_terminated_contract_cannot_consume(
        self, contract_ledger, funded_contract, test_actor_id,
    ):
        contract_ledger.terminate(funded_contract.id, test_actor_id)
        with pytest.raises(InvalidStateError):
            contract_ledger.consume(funded_contract.id, 1, test_actor_id)


class TestRounding:
    def test_residue_lands_on_last_lesson(
        self, contract_ledger, new_contract, reference_data, test_actor_id,
    ):
        odd = reference_data.add_package(PackageInfo(
            id=uuid4(), name="Three for 1000", total_lessons=3,
            total_price=Decimal("1000"), validity_days=90,
        ))
        contract = new_contract(package_id=odd.id)
        assert contract.unit_price == Decimal("333.333333")
        contract_ledger.apply_payment(contract.id, Decimal("1000"), PaymentMethod.CASH, test_actor_id)

        amounts = [contract_ledger.consume(contract.id, 1, test_actor_id).amount for _ in range(3)]

        assert amounts == [Decimal("333.33"), Decimal("333.34"), Decimal("333.33")]
        assert sum(amounts) == Decimal("1000.00")
        assert contract_ledger.get_contract(contract.id).unearned == Decimal("0.00")


class TestAuditTrail:
    def test_every_mutation_is_audited(
        self, contract_ledger, auditor_service, funded_contract, test_actor_id,
    ):
        record = contract_ledger.consume(funded_contract.id, 1, test_actor_id)
        contract_ledger.revoke_consumption(record.id, "test", test_actor_id)
        contract_ledger.terminate(funded_contract.id, test_actor_id)

        actions = [e.action for e in auditor_service.get_trail("Contract", funded_contract.id)]
        assert actions == [
            AuditAction.CONTRACT_CREATED.value,
            AuditAction.PAYMENT_APPLIED.value,
            AuditAction.LESSON_CONSUMED.value,
            AuditAction.CONSUMPTION_REVOKED.value,
            AuditAction.CONTRACT_TERMINATED.value,
        ]
        assert auditor_service.verify_chain().valid


class TestCheckInvariants:
    def test_consistent_contract_passes(self, contract_ledger, session, funded_contract):
        contract_ledger.check_invariants(session.get(Contract, funded_contract.id))

    def test_lesson_count_mismatch_rejected(self, contract_ledger, session, funded_contract):
        contract = session.get(Contract, funded_contract.id)
        contract.remain_lessons -= 1

        with pytest.raises(LedgerInvariantError) as exc_info:
            contract_ledger.check_invariants(contract)
        assert exc_info.value.code == "LEDGER_INVARIANT"
        assert exc_info.value.violations
        session.rollback()

    def test_unearned_drift_rejected(self, contract_ledger, session, funded_contract):
        contract = session.get(Contract, funded_contract.id)
        contract.unearned = contract.unearned - Decimal("0.05")

        with pytest.raises(LedgerInvariantError):
            contract_ledger.check_invariants(contract)
        session.rollback()


class TestUnitPricePrecision:
    def test_unit_price_columns_keep_six_places(self):
        from prepaid_kernel.models.consumption import ConsumptionRecord
        from prepaid_modules.refund.orm import RefundCaseModel

        for model in (Contract, ConsumptionRecord, RefundCaseModel):
            assert model.__table__.c.unit_price.type.scale == 6
        assert Contract.__table__.c.unearned.type.scale == 2

    def test_reloaded_contract_keeps_full_liability(
        self, contract_ledger, session, new_contract, reference_data, test_actor_id,
    ):
        seven = reference_data.add_package(PackageInfo(
            id=uuid4(), name="Seven for 4800", total_lessons=7,
            total_price=Decimal("4800"), validity_days=90,
        ))
        contract = new_contract(package_id=seven.id)
        contract_ledger.apply_payment(contract.id, Decimal("4800"), PaymentMethod.CASH, test_actor_id)
        session.commit()
        session.expire_all()

        reloaded = contract_ledger.get_contract(contract.id)

        assert reloaded.unit_price == Decimal("685.714286")
        assert reloaded.unearned == Decimal("4800.00")

    def test_reloaded_price_books_exact_revenue(
        self, contract_ledger, session, new_contract, reference_data, test_actor_id,
    ):
        seven = reference_data.add_package(PackageInfo(
            id=uuid4(), name="Seven for 4800", total_lessons=7,
            total_price=Decimal("4800"), validity_days=90,
        ))
        contract = new_contract(package_id=seven.id)
        contract_ledger.apply_payment(contract.id, Decimal("4800"), PaymentMethod.CASH, test_actor_id)
        session.commit()

        booked = Decimal("0.00")
        for _ in range(7):
            session.expire_all()
            booked += contract_ledger.consume(contract.id, 1, test_actor_id).amount
            session.commit()

        assert booked == Decimal("4800.00")
        assert contract_ledger.get_contract(contract.id).unearned == Decimal("0.00")
