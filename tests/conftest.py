"""
Pytest fixtures for the prepaid ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (full schema, real commits)
- Reference data: one location, one teacher, one customer, a 48-lesson package
- Service fixtures wired to a DeterministicClock
- ``captured_logs`` for asserting on structured log output

Environment Variables:
- DATABASE_URL: when it points at PostgreSQL, tests marked ``postgres`` run
  against it; otherwise they are skipped.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from prepaid_kernel.db.engine import get_session, init_engine_from_url, reset_engine
from prepaid_kernel.domain.clock import DeterministicClock
from prepaid_kernel.domain.dtos import PaymentMethod
from prepaid_kernel.domain.reference import (
    CustomerInfo,
    LocationInfo,
    PackageInfo,
    StaticReferenceData,
    TeacherInfo,
)
from prepaid_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from prepaid_kernel.selectors.ledger_selector import LedgerSelector
from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_kernel.services.contract_ledger import ContractLedger
from prepaid_kernel.services.notifications import (
    NotificationDispatcher,
    RecordingNotificationSink,
)
from prepaid_modules._orm_registry import create_all_tables
from prepaid_modules.consumption import ConsumptionService
from prepaid_modules.contracts import ContractService
from prepaid_modules.forecast import ForecastService
from prepaid_modules.refund import RefundService
from prepaid_modules.settlement import SettlementService

TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def postgres_url() -> str | None:
    url = os.environ.get("DATABASE_URL", "")
    return url if url.startswith("postgresql") else None


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture prepaid_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, contract_service):
            contract_service.sign(...)
            logs = captured_logs()
            assert any(r["message"] == "contract_signed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("prepaid_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """A private in-memory database with the full schema."""
    engine = init_engine_from_url("sqlite://")
    create_all_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    yield sess
    sess.close()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """2024-01-01 12:00 UTC until advanced."""
    return DeterministicClock()


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
def reference_data() -> StaticReferenceData:
    ref = StaticReferenceData()
    location = ref.add_location(LocationInfo(id=uuid4(), name="Riverside"))
    ref.add_location(LocationInfo(id=uuid4(), name="Hillside"))
    ref.add_teacher(TeacherInfo(id=uuid4(), name="Ms. Park", location_ids=(location.id,)))
    ref.add_customer(CustomerInfo(id=uuid4(), name="Lin Family", phone="555-0100"))
    ref.add_package(PackageInfo(
        id=uuid4(),
        name="48 lesson package",
        total_lessons=48,
        total_price=Decimal("4800"),
        validity_days=365,
    ))
    return ref


@pytest.fixture
def location(reference_data) -> LocationInfo:
    return next(loc for loc in reference_data.locations.values() if loc.name == "Riverside")


@pytest.fixture
def other_location(reference_data) -> LocationInfo:
    return next(loc for loc in reference_data.locations.values() if loc.name == "Hillside")


@pytest.fixture
def teacher(reference_data) -> TeacherInfo:
    return next(iter(reference_data.teachers.values()))


@pytest.fixture
def customer(reference_data) -> CustomerInfo:
    return next(iter(reference_data.customers.values()))


@pytest.fixture
def package(reference_data) -> PackageInfo:
    return next(iter(reference_data.packages.values()))


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def recording_sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def dispatcher(recording_sink) -> NotificationDispatcher:
    return NotificationDispatcher([recording_sink])


@pytest.fixture
def auditor_service(session, deterministic_clock) -> AuditorService:
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def contract_ledger(session, reference_data, deterministic_clock, auditor_service) -> ContractLedger:
    return ContractLedger(
        session, reference_data, reference_data, deterministic_clock, auditor_service,
    )


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def contract_service(session, reference_data, deterministic_clock) -> ContractService:
    return ContractService(session, reference_data, reference_data, deterministic_clock)


@pytest.fixture
def consumption_service(session, reference_data, deterministic_clock, dispatcher) -> ConsumptionService:
    return ConsumptionService(
        session, reference_data, reference_data, deterministic_clock, dispatcher=dispatcher,
    )


@pytest.fixture
def refund_service(session, reference_data, deterministic_clock, dispatcher) -> RefundService:
    return RefundService(
        session, reference_data, reference_data, deterministic_clock, dispatcher=dispatcher,
    )


@pytest.fixture
def settlement_service(session, reference_data, deterministic_clock) -> SettlementService:
    return SettlementService(session, reference_data, deterministic_clock)


@pytest.fixture
def forecast_service(session, deterministic_clock) -> ForecastService:
    return ForecastService(session, deterministic_clock)


# =============================================================================
# Scenario helpers
# =============================================================================


@pytest.fixture
def signed_contract(contract_service, customer, package, location, test_actor_id):
    """Factory: sign a fully paid 48-lesson contract at the Riverside location."""

    def _sign(
        amount: Decimal | None = None,
        discount: Decimal = Decimal("0"),
        method: PaymentMethod = PaymentMethod.WECHAT,
        location_id: UUID | None = None,
    ):
        return contract_service.sign(
            customer_id=customer.id,
            package_id=package.id,
            location_id=location_id or location.id,
            actor_id=test_actor_id,
            method=method,
            amount=amount,
            discount=discount,
        )

    return _sign
