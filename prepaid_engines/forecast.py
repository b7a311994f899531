"""
Module: prepaid_engines.forecast
Responsibility:
    Project weekly cash inflow, outflow and recognized revenue over a rolling
    horizon, carry the prepaid liability forward bucket by bucket, apply
    manual overrides, and derive threshold alerts from the projection.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only kernel money helpers.  ``ForecastService`` gathers history
    and overrides from the database and calls ``RollingForecastEngine``.

Invariants enforced:
    - Purity: the anchor date is passed in; the engine never reads a clock.
    - Decimal-only arithmetic; every projected amount is rounded to cents.
    - Buckets are consecutive Monday-start ISO weeks keyed ``YYYY-Www``,
      the first containing the anchor.
    - An override replaces only the components it sets; the system
      prediction is kept on the bucket alongside the effective value.
    - At most one alert per alert type: the higher level wins, then the
      larger breach.

Failure modes:
    - ValueError from ``ForecastParameters`` on a non-positive horizon or
      history window, a missing month factor, or thresholds out of range.
    - ValueError from ``parse_bucket_key`` for malformed keys.

Audit relevance:
    Alerts are derived, never stored.  Each projection is traced via
    ``@traced_engine`` with the anchor and opening liability fingerprinted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Mapping, Sequence

from prepaid_kernel.db.types import round_money
from prepaid_kernel.domain.money import ratio
from prepaid_kernel.logging_config import get_logger
from prepaid_engines.tracer import traced_engine

logger = get_logger("engines.forecast")

_BUCKET_KEY_RE = re.compile(r"^(\d{4})-W(\d{2})$")

DEFAULT_SEASONAL_FACTORS: dict[int, Decimal] = {
    1: Decimal("1.2"),
    2: Decimal("1.3"),
    3: Decimal("1.0"),
    4: Decimal("0.9"),
    5: Decimal("0.8"),
    6: Decimal("1.0"),
    7: Decimal("1.3"),
    8: Decimal("1.4"),
    9: Decimal("1.1"),
    10: Decimal("0.9"),
    11: Decimal("0.9"),
    12: Decimal("1.0"),
}


def bucket_key(day: date) -> str:
    """ISO week key of ``day``, e.g. ``2024-W01``."""
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def parse_bucket_key(key: str) -> date:
    """Monday of the ISO week named by ``key``."""
    match = _BUCKET_KEY_RE.match(key)
    if not match:
        raise ValueError(f"Malformed bucket key: {key!r} (expected YYYY-Www)")
    try:
        return date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
    except ValueError as exc:
        raise ValueError(f"Malformed bucket key: {key!r} ({exc})") from exc


class AlertType(str, Enum):
    NEGATIVE_CASH_FLOW = "negative_cash_flow"
    LIABILITY_LOW = "liability_low"
    LIABILITY_DECLINE = "liability_decline"


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    AlertLevel.INFO: 0,
    AlertLevel.WARNING: 1,
    AlertLevel.DANGER: 2,
    AlertLevel.CRITICAL: 3,
}


@dataclass(frozen=True)
class ForecastParameters:
    """
    Tuning knobs for one projection.

    Guarantees:
        - horizon_weeks >= 1 and history_weeks >= 1.
        - seasonal_factors has a non-negative factor for every month 1..12.
        - 0 < trend_decay <= 1 and 0 <= decline_threshold <= 1.
    """

    horizon_weeks: int = 13
    history_weeks: int = 12
    seasonal_factors: Mapping[int, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_SEASONAL_FACTORS)
    )
    trend_decay: Decimal = Decimal("0.98")
    liability_floor: Decimal = Decimal("50000")
    decline_threshold: Decimal = Decimal("0.2")

    def __post_init__(self) -> None:
        if self.horizon_weeks < 1:
            raise ValueError("horizon_weeks must be at least 1")
        if self.history_weeks < 1:
            raise ValueError("history_weeks must be at least 1")
        missing = sorted(set(range(1, 13)) - set(self.seasonal_factors))
        if missing:
            raise ValueError(f"seasonal_factors missing months: {missing}")
        if any(Decimal(f) < 0 for f in self.seasonal_factors.values()):
            raise ValueError("seasonal factors cannot be negative")
        if not (Decimal("0") < self.trend_decay <= Decimal("1")):
            raise ValueError("trend_decay must be in (0, 1]")
        if self.liability_floor < 0:
            raise ValueError("liability_floor cannot be negative")
        if not (Decimal("0") <= self.decline_threshold <= Decimal("1")):
            raise ValueError("decline_threshold must be in [0, 1]")


@dataclass(frozen=True)
class HistoricalStats:
    """Trailing actuals the projection is based on.

    ``inflow_total``, ``outflow_total`` and ``revenue_total`` cover the
    ``history_weeks`` window before the anchor week.  Month figures drive the
    trend: month-to-date inflow against the previous month, taken whole or
    cut to the same elapsed days.
    """

    inflow_total: Decimal = Decimal("0")
    outflow_total: Decimal = Decimal("0")
    revenue_total: Decimal = Decimal("0")
    current_month_inflow: Decimal = Decimal("0")
    previous_month_inflow: Decimal = Decimal("0")

    @property
    def growth_rate(self) -> Decimal:
        if self.previous_month_inflow <= 0:
            return Decimal("0")
        return ratio(
            self.current_month_inflow - self.previous_month_inflow,
            self.previous_month_inflow,
        )


@dataclass(frozen=True)
class OverrideValues:
    """Manual values for one bucket; ``None`` keeps the prediction."""

    bucket_key: str
    inflow: Decimal | None = None
    outflow: Decimal | None = None
    revenue: Decimal | None = None
    locked: bool = False
    reason: str | None = None

    @property
    def has_values(self) -> bool:
        return any(v is not None for v in (self.inflow, self.outflow, self.revenue))


@dataclass(frozen=True)
class ForecastBucket:
    index: int
    bucket_key: str
    start_date: date
    end_date: date
    seasonal_factor: Decimal
    trend_factor: Decimal
    predicted_inflow: Decimal
    predicted_outflow: Decimal
    predicted_revenue: Decimal
    inflow: Decimal
    outflow: Decimal
    revenue: Decimal
    net_cash_flow: Decimal
    liability_change: Decimal
    cumulative_net_cash_flow: Decimal
    cumulative_liability: Decimal
    override: OverrideValues | None = None

    @property
    def is_overridden(self) -> bool:
        return self.override is not None and self.override.has_values

    @property
    def is_locked(self) -> bool:
        return self.override is not None and self.override.locked


@dataclass(frozen=True)
class ForecastAlert:
    alert_type: AlertType
    level: AlertLevel
    bucket_key: str
    value: Decimal
    threshold: Decimal
    breach: Decimal
    message: str


@dataclass(frozen=True)
class ForecastResult:
    anchor: date
    opening_liability: Decimal
    growth_rate: Decimal
    buckets: tuple[ForecastBucket, ...]
    alerts: tuple[ForecastAlert, ...]

    @property
    def total_inflow(self) -> Decimal:
        return sum((b.inflow for b in self.buckets), Decimal("0.00"))

    @property
    def total_outflow(self) -> Decimal:
        return sum((b.outflow for b in self.buckets), Decimal("0.00"))

    @property
    def total_revenue(self) -> Decimal:
        return sum((b.revenue for b in self.buckets), Decimal("0.00"))

    @property
    def ending_liability(self) -> Decimal:
        return self.buckets[-1].cumulative_liability if self.buckets else self.opening_liability

    @property
    def override_count(self) -> int:
        return sum(1 for b in self.buckets if b.is_overridden)

    def bucket(self, key: str) -> ForecastBucket | None:
        return next((b for b in self.buckets if b.bucket_key == key), None)


class RollingForecastEngine:
    """
    Stateless weekly projection.

    Contract:
        ``project`` is deterministic for identical inputs.
    Non-goals:
        - Does NOT load history or overrides (ForecastService does).
        - Does NOT persist alerts.
    """

    def __init__(self, parameters: ForecastParameters | None = None):
        self.parameters = parameters or ForecastParameters()

    @traced_engine("rolling_forecast", "1.0", fingerprint_fields=("anchor", "opening_liability"))
    def project(
        self,
        *,
        history: HistoricalStats,
        anchor: date,
        opening_liability: Decimal,
        overrides: Sequence[OverrideValues] = (),
    ) -> ForecastResult:
        params = self.parameters
        by_key = {o.bucket_key: o for o in overrides}

        window = Decimal(params.history_weeks)
        base_inflow = history.inflow_total / window
        base_outflow = history.outflow_total / window
        base_revenue = history.revenue_total / window
        growth = history.growth_rate

        first = week_start(anchor)
        cumulative_net = Decimal("0.00")
        cumulative_liability = round_money(opening_liability)
        buckets: list[ForecastBucket] = []

        for i in range(params.horizon_weeks):
            start = first + timedelta(weeks=i)
            key = bucket_key(start)
            seasonal = Decimal(params.seasonal_factors[start.month])
            trend = Decimal(1) + growth * params.trend_decay ** i

            predicted_inflow = round_money(base_inflow * seasonal * trend)
            predicted_outflow = round_money(base_outflow)
            predicted_revenue = round_money(base_revenue * seasonal)

            override = by_key.get(key)
            inflow, outflow, revenue = predicted_inflow, predicted_outflow, predicted_revenue
            if override is not None:
                if override.inflow is not None:
                    inflow = round_money(override.inflow)
                if override.outflow is not None:
                    outflow = round_money(override.outflow)
                if override.revenue is not None:
                    revenue = round_money(override.revenue)

            net = inflow - outflow
            liability_change = inflow - revenue - outflow
            cumulative_net += net
            cumulative_liability += liability_change

            buckets.append(ForecastBucket(
                index=i,
                bucket_key=key,
                start_date=start,
                end_date=start + timedelta(days=6),
                seasonal_factor=seasonal,
                trend_factor=trend,
                predicted_inflow=predicted_inflow,
                predicted_outflow=predicted_outflow,
                predicted_revenue=predicted_revenue,
                inflow=inflow,
                outflow=outflow,
                revenue=revenue,
                net_cash_flow=net,
                liability_change=liability_change,
                cumulative_net_cash_flow=cumulative_net,
                cumulative_liability=cumulative_liability,
                override=override,
            ))

        opening = round_money(opening_liability)
        alerts = self.derive_alerts(buckets, opening)
        if alerts:
            logger.info(
                "forecast_alerts_derived",
                extra={
                    "anchor": anchor.isoformat(),
                    "alert_types": [a.alert_type.value for a in alerts],
                },
            )
        return ForecastResult(
            anchor=anchor,
            opening_liability=opening,
            growth_rate=growth,
            buckets=tuple(buckets),
            alerts=alerts,
        )

    def derive_alerts(
        self,
        buckets: Sequence[ForecastBucket],
        opening_liability: Decimal,
    ) -> tuple[ForecastAlert, ...]:
        params = self.parameters
        best: dict[AlertType, ForecastAlert] = {}

        def offer(alert: ForecastAlert) -> None:
            current = best.get(alert.alert_type)
            if current is None or (alert.level.rank, alert.breach) > (
                current.level.rank, current.breach,
            ):
                best[alert.alert_type] = alert

        for b in buckets:
            if b.cumulative_net_cash_flow < 0:
                offer(ForecastAlert(
                    alert_type=AlertType.NEGATIVE_CASH_FLOW,
                    level=AlertLevel.DANGER,
                    bucket_key=b.bucket_key,
                    value=b.cumulative_net_cash_flow,
                    threshold=Decimal("0"),
                    breach=-b.cumulative_net_cash_flow,
                    message=f"Cumulative net cash flow turns negative in {b.bucket_key}",
                ))
            if b.cumulative_liability < params.liability_floor:
                offer(ForecastAlert(
                    alert_type=AlertType.LIABILITY_LOW,
                    level=AlertLevel.WARNING,
                    bucket_key=b.bucket_key,
                    value=b.cumulative_liability,
                    threshold=params.liability_floor,
                    breach=params.liability_floor - b.cumulative_liability,
                    message=f"Unearned liability below {params.liability_floor} in {b.bucket_key}",
                ))
            if opening_liability > 0:
                decline = ratio(opening_liability - b.cumulative_liability, opening_liability)
                if decline > params.decline_threshold:
                    offer(ForecastAlert(
                        alert_type=AlertType.LIABILITY_DECLINE,
                        level=AlertLevel.WARNING,
                        bucket_key=b.bucket_key,
                        value=decline,
                        threshold=params.decline_threshold,
                        breach=decline - params.decline_threshold,
                        message=f"Unearned liability down {decline:.2%} from opening by {b.bucket_key}",
                    ))

        return tuple(best[t] for t in AlertType if t in best)
