"""
prepaid_modules.refund.config
=============================

Responsibility:
    Refund risk thresholds and report rating bands.

Invariants enforced:
    - Rates are within [0, 1]; each warn threshold is at most its high
      threshold (validated in ``__post_init__`` and again by
      ``RiskThresholds``).

Failure modes:
    - Invalid configuration values -> ``ValueError`` from ``__post_init__``.

Audit relevance:
    The assessment computed with these thresholds is stored in each refund
    case's snapshot, so changing them never rewrites history.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from prepaid_engines.refund_risk import RiskThresholds
from prepaid_kernel.logging_config import get_logger

logger = get_logger("modules.refund.config")


@dataclass
class RefundConfig:
    customer_rate_warn: Decimal = Decimal("0.3")
    customer_rate_high: Decimal = Decimal("0.5")
    location_rate_warn: Decimal = Decimal("0.1")
    location_rate_high: Decimal = Decimal("0.2")
    location_window_days: int = 30
    high_amount: Decimal = Decimal("10000")

    # refund_rate_report bands
    report_rate_medium: Decimal = Decimal("0.1")
    report_rate_high: Decimal = Decimal("0.2")

    max_attempts: int = 3

    def __post_init__(self):
        for name in (
            "customer_rate_warn", "customer_rate_high", "location_rate_warn",
            "location_rate_high", "high_amount", "report_rate_medium", "report_rate_high",
        ):
            setattr(self, name, Decimal(str(getattr(self, name))))

        for name in (
            "customer_rate_warn", "customer_rate_high", "location_rate_warn",
            "location_rate_high", "report_rate_medium", "report_rate_high",
        ):
            if not Decimal("0") <= getattr(self, name) <= Decimal("1"):
                raise ValueError(f"{name} must be between 0 and 1")
        if self.report_rate_medium > self.report_rate_high:
            raise ValueError("report_rate_medium cannot exceed report_rate_high")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.thresholds()

        logger.info(
            "refund_config_initialized",
            extra={
                "customer_rate_high": str(self.customer_rate_high),
                "location_rate_high": str(self.location_rate_high),
                "high_amount": str(self.high_amount),
            },
        )

    def thresholds(self) -> RiskThresholds:
        return RiskThresholds(
            customer_rate_warn=self.customer_rate_warn,
            customer_rate_high=self.customer_rate_high,
            location_rate_warn=self.location_rate_warn,
            location_rate_high=self.location_rate_high,
            high_amount=self.high_amount,
            location_window_days=self.location_window_days,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("refund_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info("refund_config_loading_from_dict", extra={"keys": sorted(data.keys())})
        return cls(**data)
