"""Tests for cent-precision money helpers (prepaid_kernel.domain.money)."""

from decimal import Decimal

import pytest

from prepaid_kernel.domain.money import (
    add,
    amount_for_lessons,
    compare,
    divide_unit_price,
    ratio,
    subtract,
    to_money,
    within_tolerance,
)


class TestToMoney:

    def test_rounds_half_up_to_cents(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(Decimal("10.004")) == Decimal("10.00")

    def test_int_and_str_accepted(self):
        assert to_money(5) == Decimal("5.00")
        assert to_money("4800") == Decimal("4800.00")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            to_money(0.1)

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            to_money("ten dollars")


class TestLessonPricing:

    def test_even_unit_price(self):
        assert divide_unit_price(Decimal("4800.00"), 48) == Decimal("100.000000")

    def test_repeating_unit_price_keeps_six_places(self):
        assert divide_unit_price(Decimal("1000.00"), 3) == Decimal("333.333333")

    def test_zero_lessons_rejected(self):
        with pytest.raises(ValueError):
            divide_unit_price(Decimal("100.00"), 0)

    def test_amount_for_lessons_rounds_product(self):
        unit = divide_unit_price(Decimal("1000.00"), 3)
        assert amount_for_lessons(unit, 3) == Decimal("1000.00")
        assert amount_for_lessons(unit, 2) == Decimal("666.67")
        assert amount_for_lessons(unit, 0) == Decimal("0.00")


class TestArithmetic:

    def test_add_and_subtract(self):
        assert add(Decimal("1.10"), Decimal("2.20"), Decimal("0.005")) == Decimal("3.31")
        assert subtract(Decimal("3800.00"), Decimal("200.00")) == Decimal("3600.00")

    def test_compare_at_cent_precision(self):
        assert compare(Decimal("1.001"), Decimal("1.00")) == 0
        assert compare(Decimal("1.00"), Decimal("1.01")) == -1
        assert compare(Decimal("2"), Decimal("1.99")) == 1

    def test_within_tolerance(self):
        assert within_tolerance(Decimal("100.01"), Decimal("100.00"))
        assert not within_tolerance(Decimal("100.02"), Decimal("100.00"))

    def test_ratio_handles_zero_denominator(self):
        assert ratio(Decimal("5"), Decimal("0")) == Decimal("0")
        assert ratio(Decimal("1"), Decimal("3")) == Decimal("0.3333")
