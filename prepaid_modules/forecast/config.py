"""
prepaid_modules.forecast.config
===============================

Responsibility:
    Rolling forecast settings: horizon, history window, monthly seasonal
    factors, trend decay, growth proration and alert thresholds.

Invariants enforced:
    - Same as ``ForecastParameters``; validation is delegated to it so the
      module config and the engine can never disagree.
    - Numeric values are coerced to ``Decimal`` via ``str`` (never through
      binary float arithmetic).

Failure modes:
    - Invalid configuration values -> ``ValueError`` from ``__post_init__``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from prepaid_engines.forecast import DEFAULT_SEASONAL_FACTORS, ForecastParameters
from prepaid_kernel.logging_config import get_logger

logger = get_logger("modules.forecast.config")


@dataclass
class ForecastConfig:
    horizon_weeks: int = 13
    history_weeks: int = 12
    seasonal_factors: dict[int, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_SEASONAL_FACTORS)
    )
    trend_decay: Decimal = Decimal("0.98")
    liability_floor: Decimal = Decimal("50000")
    decline_threshold: Decimal = Decimal("0.2")
    # Compare month-to-date inflow with the same elapsed days of the previous
    # month instead of the whole previous month.
    prorate_growth: bool = False
    max_attempts: int = 3

    def __post_init__(self):
        factors = dict(DEFAULT_SEASONAL_FACTORS)
        factors.update({int(m): Decimal(str(f)) for m, f in self.seasonal_factors.items()})
        self.seasonal_factors = factors
        self.trend_decay = Decimal(str(self.trend_decay))
        self.liability_floor = Decimal(str(self.liability_floor))
        self.decline_threshold = Decimal(str(self.decline_threshold))
        if not isinstance(self.prorate_growth, bool):
            raise ValueError("prorate_growth must be true or false")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.parameters()

        logger.info(
            "forecast_config_initialized",
            extra={
                "horizon_weeks": self.horizon_weeks,
                "history_weeks": self.history_weeks,
                "liability_floor": str(self.liability_floor),
                "prorate_growth": self.prorate_growth,
            },
        )

    def parameters(self) -> ForecastParameters:
        return ForecastParameters(
            horizon_weeks=self.horizon_weeks,
            history_weeks=self.history_weeks,
            seasonal_factors=dict(self.seasonal_factors),
            trend_decay=self.trend_decay,
            liability_floor=self.liability_floor,
            decline_threshold=self.decline_threshold,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("forecast_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info("forecast_config_loading_from_dict", extra={"keys": sorted(data.keys())})
        return cls(**data)
