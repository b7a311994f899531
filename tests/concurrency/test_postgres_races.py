"""
True-concurrency tests against PostgreSQL.

Each worker thread has its own session.  Row locks (SELECT ... FOR UPDATE)
must serialize ledger mutations so that:
- concurrent consumption never oversells a contract
- only one refund case per contract can be open
- a business day settles once per location

Skipped unless DATABASE_URL points at PostgreSQL.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from prepaid_kernel.db.base import Base
from prepaid_kernel.db.engine import get_session_factory, init_engine_from_url, reset_engine
from prepaid_kernel.domain.clock import DeterministicClock
from prepaid_kernel.domain.dtos import ContractStatus, PaymentMethod
from prepaid_kernel.exceptions import (
    AlreadySettledError,
    ConflictingRequestError,
    InsufficientBalanceError,
    InvalidStateError,
)
from prepaid_kernel.selectors.ledger_selector import LedgerSelector
from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_modules._orm_registry import create_all_tables
from prepaid_modules.consumption import ConsumptionService
from prepaid_modules.contracts import ContractService
from prepaid_modules.refund import RefundService
from prepaid_modules.settlement import SettlementService

DATABASE_URL = os.environ.get("DATABASE_URL", "")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(
        not DATABASE_URL.startswith("postgresql"),
        reason="requires DATABASE_URL pointing at PostgreSQL",
    ),
]

WORKERS = 8


@pytest.fixture
def pg_factory():
    engine = init_engine_from_url(DATABASE_URL, pool_size=WORKERS + 2)
    Base.metadata.drop_all(engine)
    create_all_tables()
    yield get_session_factory()
    Base.metadata.drop_all(engine)
    reset_engine()


@pytest.fixture
def pg_contract(pg_factory, reference_data, customer, package, location, test_actor_id):
    def _sign():
        session = pg_factory()
        try:
            return ContractService(session, reference_data, reference_data, DeterministicClock()).sign(
                customer.id, package.id, location.id, test_actor_id, method=PaymentMethod.CASH,
            )
        finally:
            session.close()

    return _sign


def _race(worker, count=WORKERS):
    """Run ``worker`` in ``count`` threads released together; return outcomes."""
    barrier = Barrier(count)

    def run(i):
        barrier.wait()
        try:
            return worker(i)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(run, range(count)))


class TestConsumptionRace:
    def test_no_oversell(
        self, pg_factory, pg_contract, reference_data, teacher, location, test_actor_id,
    ):
        contract = pg_contract()
        session = pg_factory()
        ConsumptionService(session, reference_data, reference_data, DeterministicClock()).consume(
            contract.id, 43, test_actor_id, teacher.id, location.id,
        )
        session.close()

        def consume_one(_):
            s = pg_factory()
            try:
                service = ConsumptionService(s, reference_data, reference_data, DeterministicClock())
                return service.consume(contract.id, 1, test_actor_id, teacher.id, location.id)
            finally:
                s.close()

        outcomes = _race(consume_one)

        successes = [o for o in outcomes if not isinstance(o, Exception)]
        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(successes) == 5
        assert all(isinstance(f, (InsufficientBalanceError, InvalidStateError)) for f in failures)
        assert sorted(r.after_remain for r in successes) == [0, 1, 2, 3, 4]

        check = pg_factory()
        try:
            final = LedgerSelector(check).get_contract(contract.id)
            assert final.remain_lessons == 0
            assert final.unearned == Decimal("0.00")
            assert final.status == ContractStatus.COMPLETED
            assert LedgerSelector(check).find_invariant_violations() == []
            assert AuditorService(check).verify_chain().valid
        finally:
            check.close()


class TestRefundRace:
    def test_single_open_case(self, pg_factory, pg_contract, reference_data, test_actor_id):
        contract = pg_contract()

        def request(i):
            s = pg_factory()
            try:
                return RefundService(s, reference_data, reference_data, DeterministicClock()).request(
                    contract.id, f"worker {i}", test_actor_id,
                )
            finally:
                s.close()

        outcomes = _race(request)
        successes = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(successes) == 1
        assert all(
            isinstance(o, ConflictingRequestError) for o in outcomes if isinstance(o, Exception)
        )


class TestSettlementRace:
    def test_settles_once(self, pg_factory, pg_contract, reference_data, location, test_actor_id):
        pg_contract()

        def settle(_):
            s = pg_factory()
            try:
                return SettlementService(s, reference_data, DeterministicClock()).settle(
                    DeterministicClock().today(), location.id, test_actor_id,
                )
            finally:
                s.close()

        outcomes = _race(settle)
        successes = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(successes) == 1
        assert successes[0].inflow_total == Decimal("4800.00")
        assert all(
            isinstance(o, AlreadySettledError) for o in outcomes if isinstance(o, Exception)
        )
