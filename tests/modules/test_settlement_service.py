"""
SettlementService tests.

Verifies:
- A day's report totals inflow, outflow and NORMAL consumption per location
- Closing liability is captured at settlement time
- A (date, location) pair settles once
- Range listing and summed totals
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from prepaid_kernel.domain.dtos import PaymentMethod
from prepaid_kernel.exceptions import AlreadySettledError, NotFoundError

DAY = date(2024, 1, 1)


@pytest.fixture
def business_day(
    signed_contract, consumption_service, refund_service, teacher, location, other_location,
    test_actor_id,
):
    """Riverside: two sales, 10 lessons taught, one full refund.  Hillside: one sale."""
    taught = signed_contract(method=PaymentMethod.WECHAT)
    refunded = signed_contract(method=PaymentMethod.CASH)
    signed_contract(location_id=other_location.id)

    consumption_service.consume(taught.id, 10, test_actor_id, teacher.id, location.id)
    case = refund_service.request(refunded.id, "moving", test_actor_id)
    refund_service.approve(case.id, True, test_actor_id)
    refund_service.complete(case.id, PaymentMethod.CASH, None, test_actor_id)
    return taught


class TestSettle:
    def test_daily_totals(self, settlement_service, business_day, location, test_actor_id):
        report = settlement_service.settle(DAY, location.id, test_actor_id)

        assert report.inflow_total == Decimal("9600.00")
        assert report.inflow_count == 2
        assert report.outflow_total == Decimal("4800.00")
        assert report.outflow_count == 1
        assert report.net_cash_flow == Decimal("4800.00")
        assert report.recognized_revenue == Decimal("1000.00")
        assert report.consumed_lessons == 10
        assert report.consumption_count == 1
        assert report.closing_liability == Decimal("3800.00")
        assert report.snapshot["inflow_by_method"] == {"wechat": "4800.00", "cash": "4800.00"}
        assert report.snapshot["refund_count"] == 1

    def test_other_location_is_separate(
        self, settlement_service, business_day, other_location, test_actor_id,
    ):
        report = settlement_service.settle(DAY, other_location.id, test_actor_id)
        assert report.inflow_total == Decimal("4800.00")
        assert report.outflow_total == Decimal("0.00")
        assert report.recognized_revenue == Decimal("0.00")
        assert report.closing_liability == Decimal("4800.00")

    def test_empty_day(self, settlement_service, location, test_actor_id):
        report = settlement_service.settle(date(2023, 12, 31), location.id, test_actor_id)
        assert report.inflow_count == 0
        assert report.net_cash_flow == Decimal("0.00")

    def test_settles_once(self, settlement_service, business_day, location, test_actor_id):
        settlement_service.settle(DAY, location.id, test_actor_id)
        with pytest.raises(AlreadySettledError):
            settlement_service.settle(DAY, location.id, test_actor_id)

    def test_unknown_location(self, settlement_service, test_actor_id):
        with pytest.raises(NotFoundError):
            settlement_service.settle(DAY, uuid4(), test_actor_id)

    def test_report_is_a_snapshot(
        self, settlement_service, business_day, consumption_service, teacher, location,
        test_actor_id,
    ):
        settlement_service.settle(DAY, location.id, test_actor_id)
        consumption_service.consume(business_day.id, 1, test_actor_id, teacher.id, location.id)

        stored = settlement_service.get_report(DAY, location.id)
        assert stored.consumed_lessons == 10
        assert stored.closing_liability == Decimal("3800.00")


class TestReports:
    def test_get_missing_report(self, settlement_service, location):
        with pytest.raises(NotFoundError):
            settlement_service.get_report(DAY, location.id)

    def test_list_reports(
        self, settlement_service, business_day, location, other_location, test_actor_id,
    ):
        settlement_service.settle(date(2023, 12, 31), location.id, test_actor_id)
        settlement_service.settle(DAY, location.id, test_actor_id)
        settlement_service.settle(DAY, other_location.id, test_actor_id)

        summary = settlement_service.list_reports(date(2023, 12, 1), date(2024, 1, 31), location.id)
        assert [r.business_date for r in summary.reports] == [DAY, date(2023, 12, 31)]
        assert summary.inflow_total == Decimal("9600.00")
        assert summary.consumed_lessons == 10

        everywhere = settlement_service.list_reports(DAY, DAY)
        assert len(everywhere.reports) == 2
        assert everywhere.net_cash_flow == Decimal("9600.00")
