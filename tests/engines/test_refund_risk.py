"""Tests for refund risk scoring (prepaid_engines.refund_risk)."""

from decimal import Decimal

import pytest

from prepaid_engines.refund_risk import (
    RefundRiskAssessor,
    RiskLevel,
    RiskThresholds,
    rate_level,
)


def _assess(assessor=None, **overrides):
    kwargs = dict(
        customer_contracts=1,
        customer_refunds=0,
        location_inflow=Decimal("10000"),
        location_refunds=Decimal("0"),
        payable_amount=Decimal("3600"),
    )
    kwargs.update(overrides)
    return (assessor or RefundRiskAssessor()).assess(**kwargs)


def test_clean_history_is_low_risk():
    assessment = _assess()
    assert assessment.level == RiskLevel.LOW
    assert assessment.passed
    assert assessment.factors == ()


def test_repeat_refunder_is_high_risk():
    assessment = _assess(customer_contracts=2, customer_refunds=1)
    assert assessment.level == RiskLevel.HIGH
    assert not assessment.passed
    assert assessment.customer_refund_rate == Decimal("0.5000")
    assert [f.code for f in assessment.factors] == ["CUSTOMER_REFUND_RATE"]


def test_location_refund_rate_bands():
    medium = _assess(location_refunds=Decimal("1500"))
    high = _assess(location_refunds=Decimal("2000"))
    assert medium.level == RiskLevel.MEDIUM
    assert high.level == RiskLevel.HIGH


def test_location_without_inflow_scores_zero():
    assessment = _assess(location_inflow=Decimal("0"), location_refunds=Decimal("500"))
    assert assessment.location_refund_rate == Decimal("0")


def test_large_refund_is_medium_only():
    assessment = _assess(payable_amount=Decimal("25000"))
    assert assessment.level == RiskLevel.MEDIUM
    assert assessment.passed
    assert assessment.factors[0].code == "HIGH_AMOUNT"


def test_highest_factor_wins():
    assessment = _assess(
        customer_contracts=2, customer_refunds=1, payable_amount=Decimal("25000"),
    )
    assert assessment.level == RiskLevel.HIGH
    assert {f.code for f in assessment.factors} == {"CUSTOMER_REFUND_RATE", "HIGH_AMOUNT"}


def test_snapshot_is_json_friendly():
    snapshot = _assess(payable_amount=Decimal("25000")).to_snapshot()
    assert snapshot["level"] == "medium"
    assert snapshot["passed"] is True
    assert snapshot["factors"][0]["value"] == "25000"


def test_custom_thresholds():
    strict = RefundRiskAssessor(RiskThresholds(high_amount=Decimal("1000")))
    assert _assess(strict).level == RiskLevel.MEDIUM


def test_thresholds_validated():
    with pytest.raises(ValueError):
        RiskThresholds(customer_rate_warn=Decimal("0.6"), customer_rate_high=Decimal("0.5"))


@pytest.mark.parametrize(
    "rate,expected",
    [("0", RiskLevel.LOW), ("0.0999", RiskLevel.LOW), ("0.1", RiskLevel.MEDIUM),
     ("0.2", RiskLevel.HIGH), ("0.75", RiskLevel.HIGH)],
)
def test_rate_level(rate, expected):
    assert rate_level(Decimal(rate)) == expected
