"""
SequenceService tests.

Verifies:
- Counters start at 1 and increase strictly
- Business numbers restart per prefix per day
"""

from datetime import date

from prepaid_kernel.domain.numbering import NumberPrefix
from prepaid_kernel.services.sequence_service import SequenceService


class TestNextValue:
    def test_starts_at_one_and_increases(self, session):
        seq = SequenceService(session)
        values = [seq.next_value("test_counter") for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_counters_are_independent(self, session):
        seq = SequenceService(session)
        seq.next_value("a")
        seq.next_value("a")
        assert seq.next_value("b") == 1

    def test_current_value(self, session):
        seq = SequenceService(session)
        assert seq.current_value("missing") is None
        seq.next_value("present")
        seq.next_value("present")
        assert seq.current_value("present") == 2

    def test_values_survive_commit(self, session):
        seq = SequenceService(session)
        seq.next_value("durable")
        session.commit()
        assert SequenceService(session).next_value("durable") == 2


class TestBusinessNumbers:
    def test_format(self, session):
        seq = SequenceService(session)
        number = seq.next_business_number(NumberPrefix.CONTRACT, date(2024, 12, 27))
        assert number == "HT20241227001"

    def test_restarts_each_day(self, session):
        seq = SequenceService(session)
        day1 = date(2024, 3, 1)
        day2 = date(2024, 3, 2)
        assert seq.next_business_number(NumberPrefix.REFUND, day1) == "TF20240301001"
        assert seq.next_business_number(NumberPrefix.REFUND, day1) == "TF20240301002"
        assert seq.next_business_number(NumberPrefix.REFUND, day2) == "TF20240302001"

    def test_prefixes_have_separate_counters(self, session):
        seq = SequenceService(session)
        day = date(2024, 3, 1)
        seq.next_business_number(NumberPrefix.PAYMENT, day)
        assert seq.next_business_number(NumberPrefix.CONSUMPTION, day) == "XK20240301001"
