"""
Module: prepaid_engines.refund_risk
Responsibility:
    Score a refund request from the customer's refund history, the
    location's recent refund rate and the payable amount, and rate a
    location's refund ratio for reporting.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``RefundService`` collects
    the counts and totals and stores the assessment in the case snapshot.

Invariants enforced:
    - The overall level is the highest factor level; LOW when no factor
      fires.
    - ``passed`` is False only for HIGH.  The assessment is advisory: it
      never blocks a request.

Failure modes:
    - ValueError from ``RiskThresholds`` when a warn threshold exceeds its
      high threshold or a threshold is negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from prepaid_kernel.domain.money import ratio
from prepaid_engines.tracer import traced_engine


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


@dataclass(frozen=True)
class RiskThresholds:
    customer_rate_warn: Decimal = Decimal("0.3")
    customer_rate_high: Decimal = Decimal("0.5")
    location_rate_warn: Decimal = Decimal("0.1")
    location_rate_high: Decimal = Decimal("0.2")
    high_amount: Decimal = Decimal("10000")
    location_window_days: int = 30

    def __post_init__(self) -> None:
        for name in (
            "customer_rate_warn", "customer_rate_high",
            "location_rate_warn", "location_rate_high", "high_amount",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.customer_rate_warn > self.customer_rate_high:
            raise ValueError("customer_rate_warn cannot exceed customer_rate_high")
        if self.location_rate_warn > self.location_rate_high:
            raise ValueError("location_rate_warn cannot exceed location_rate_high")
        if self.location_window_days < 1:
            raise ValueError("location_window_days must be at least 1")


@dataclass(frozen=True)
class RiskFactor:
    code: str
    level: RiskLevel
    value: Decimal
    threshold: Decimal
    message: str


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    customer_refund_rate: Decimal
    location_refund_rate: Decimal
    factors: tuple[RiskFactor, ...] = ()

    @property
    def passed(self) -> bool:
        return self.level != RiskLevel.HIGH

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "passed": self.passed,
            "customer_refund_rate": str(self.customer_refund_rate),
            "location_refund_rate": str(self.location_refund_rate),
            "factors": [
                {
                    "code": f.code,
                    "level": f.level.value,
                    "value": str(f.value),
                    "threshold": str(f.threshold),
                    "message": f.message,
                }
                for f in self.factors
            ],
        }


def rate_level(
    rate: Decimal,
    warn: Decimal = Decimal("0.1"),
    high: Decimal = Decimal("0.2"),
) -> RiskLevel:
    """Classify a refund ratio: HIGH at ``high`` and above, MEDIUM at ``warn``."""
    if rate >= high:
        return RiskLevel.HIGH
    if rate >= warn:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RefundRiskAssessor:
    """Stateless refund risk scoring."""

    def __init__(self, thresholds: RiskThresholds | None = None):
        self.thresholds = thresholds or RiskThresholds()

    @traced_engine(
        "refund_risk", "1.0",
        fingerprint_fields=("customer_contracts", "customer_refunds", "payable_amount"),
    )
    def assess(
        self,
        *,
        customer_contracts: int,
        customer_refunds: int,
        location_inflow: Decimal,
        location_refunds: Decimal,
        payable_amount: Decimal,
    ) -> RiskAssessment:
        t = self.thresholds
        factors: list[RiskFactor] = []

        customer_rate = ratio(Decimal(customer_refunds), Decimal(customer_contracts))
        customer_level = rate_level(customer_rate, t.customer_rate_warn, t.customer_rate_high)
        if customer_level != RiskLevel.LOW:
            factors.append(RiskFactor(
                code="CUSTOMER_REFUND_RATE",
                level=customer_level,
                value=customer_rate,
                threshold=(
                    t.customer_rate_high if customer_level == RiskLevel.HIGH
                    else t.customer_rate_warn
                ),
                message=f"Customer has refunded {customer_refunds} of {customer_contracts} contracts",
            ))

        location_rate = ratio(location_refunds, location_inflow)
        location_level = rate_level(location_rate, t.location_rate_warn, t.location_rate_high)
        if location_level != RiskLevel.LOW:
            factors.append(RiskFactor(
                code="LOCATION_REFUND_RATE",
                level=location_level,
                value=location_rate,
                threshold=(
                    t.location_rate_high if location_level == RiskLevel.HIGH
                    else t.location_rate_warn
                ),
                message=(
                    f"Location refunds are {location_rate:.2%} of inflow over the last "
                    f"{t.location_window_days} days"
                ),
            ))

        if payable_amount > t.high_amount:
            factors.append(RiskFactor(
                code="HIGH_AMOUNT",
                level=RiskLevel.MEDIUM,
                value=payable_amount,
                threshold=t.high_amount,
                message=f"Refund of {payable_amount} exceeds {t.high_amount}",
            ))

        level = max((f.level for f in factors), key=_RANK.__getitem__, default=RiskLevel.LOW)
        return RiskAssessment(
            level=level,
            customer_refund_rate=customer_rate,
            location_refund_rate=location_rate,
            factors=tuple(factors),
        )
