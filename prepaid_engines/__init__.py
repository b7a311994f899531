"""
Module: prepaid_engines
Responsibility:
    Re-exports the pure calculation engines: the rolling cash/liability
    forecast and refund risk scoring.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import prepaid_kernel domain helpers and logging only.
    MUST NOT import prepaid_modules.

Invariants enforced:
    - Engines never read a clock; dates are passed in by services.
    - Decimal-only arithmetic.
    - Identical inputs produce identical outputs.
"""

from prepaid_engines.forecast import (
    AlertLevel,
    AlertType,
    ForecastAlert,
    ForecastBucket,
    ForecastParameters,
    ForecastResult,
    HistoricalStats,
    OverrideValues,
    RollingForecastEngine,
    bucket_key,
    parse_bucket_key,
    week_start,
)
from prepaid_engines.refund_risk import (
    RefundRiskAssessor,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    RiskThresholds,
    rate_level,
)
from prepaid_engines.tracer import traced_engine

__all__ = [
    "AlertLevel",
    "AlertType",
    "ForecastAlert",
    "ForecastBucket",
    "ForecastParameters",
    "ForecastResult",
    "HistoricalStats",
    "OverrideValues",
    "RefundRiskAssessor",
    "RiskAssessment",
    "RiskFactor",
    "RiskLevel",
    "RiskThresholds",
    "RollingForecastEngine",
    "bucket_key",
    "parse_bucket_key",
    "rate_level",
    "traced_engine",
    "week_start",
]
