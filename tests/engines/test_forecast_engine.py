"""Tests for the rolling weekly forecast engine (prepaid_engines.forecast)."""

from datetime import date
from decimal import Decimal

import pytest

from prepaid_engines.forecast import (
    AlertLevel,
    AlertType,
    ForecastParameters,
    HistoricalStats,
    OverrideValues,
    RollingForecastEngine,
    bucket_key,
    parse_bucket_key,
    week_start,
)

FLAT = {month: Decimal("1") for month in range(1, 13)}
ANCHOR = date(2024, 3, 6)  # a Wednesday in ISO week 10


def _engine(**overrides) -> RollingForecastEngine:
    params = dict(horizon_weeks=4, history_weeks=12, seasonal_factors=FLAT)
    params.update(overrides)
    return RollingForecastEngine(ForecastParameters(**params))


def _history(inflow="12000", outflow="1200", revenue="6000", current="0", previous="0"):
    return HistoricalStats(
        inflow_total=Decimal(inflow),
        outflow_total=Decimal(outflow),
        revenue_total=Decimal(revenue),
        current_month_inflow=Decimal(current),
        previous_month_inflow=Decimal(previous),
    )


class TestBucketKeys:

    def test_iso_week_key(self):
        assert bucket_key(date(2024, 1, 1)) == "2024-W01"
        assert bucket_key(ANCHOR) == "2024-W10"

    def test_iso_year_differs_from_calendar_year(self):
        assert bucket_key(date(2024, 12, 30)) == "2025-W01"

    def test_week_start_is_monday(self):
        assert week_start(ANCHOR) == date(2024, 3, 4)
        assert week_start(date(2024, 3, 4)) == date(2024, 3, 4)

    def test_parse_returns_monday(self):
        assert parse_bucket_key("2024-W10") == date(2024, 3, 4)

    @pytest.mark.parametrize("bad", ["2024-10", "2024-W1", "2024-W54", "W10-2024", ""])
    def test_parse_rejects_malformed(self, bad):
        with pytest.raises(ValueError):
            parse_bucket_key(bad)


class TestParameters:

    def test_missing_months_rejected(self):
        with pytest.raises(ValueError):
            ForecastParameters(seasonal_factors={1: Decimal("1")})

    def test_horizon_must_be_positive(self):
        with pytest.raises(ValueError):
            ForecastParameters(horizon_weeks=0)

    def test_trend_decay_range(self):
        with pytest.raises(ValueError):
            ForecastParameters(trend_decay=Decimal("1.5"))


class TestProjection:

    def test_flat_projection_from_weekly_averages(self):
        result = _engine().project(
            history=_history(), anchor=ANCHOR, opening_liability=Decimal("100000"),
        )

        assert [b.bucket_key for b in result.buckets] == [
            "2024-W10", "2024-W11", "2024-W12", "2024-W13",
        ]
        first = result.buckets[0]
        assert first.start_date == date(2024, 3, 4)
        assert first.end_date == date(2024, 3, 10)
        assert first.inflow == Decimal("1000.00")
        assert first.outflow == Decimal("100.00")
        assert first.revenue == Decimal("500.00")
        assert first.net_cash_flow == Decimal("900.00")
        assert first.liability_change == Decimal("400.00")
        assert result.ending_liability == Decimal("101600.00")
        assert result.total_inflow == Decimal("4000.00")
        assert result.alerts == ()

    def test_seasonal_factor_scales_inflow_and_revenue(self):
        factors = dict(FLAT)
        factors[3] = Decimal("1.5")
        result = _engine(seasonal_factors=factors).project(
            history=_history(), anchor=ANCHOR, opening_liability=Decimal("100000"),
        )
        first = result.buckets[0]
        assert first.inflow == Decimal("1500.00")
        assert first.revenue == Decimal("750.00")
        assert first.outflow == Decimal("100.00")

    def test_growth_trend_decays_over_horizon(self):
        result = _engine().project(
            history=_history(current="1200", previous="1000"),
            anchor=ANCHOR,
            opening_liability=Decimal("100000"),
        )
        assert result.growth_rate == Decimal("0.2000")
        assert result.buckets[0].inflow == Decimal("1200.00")
        assert result.buckets[1].inflow == Decimal("1196.00")
        assert result.buckets[1].inflow > result.buckets[2].inflow

    def test_no_history_projects_zero(self):
        result = _engine().project(
            history=HistoricalStats(), anchor=ANCHOR, opening_liability=Decimal("0"),
        )
        assert all(b.inflow == 0 and b.outflow == 0 for b in result.buckets)
        assert result.ending_liability == Decimal("0.00")

    def test_override_replaces_only_given_components(self):
        override = OverrideValues(bucket_key="2024-W11", inflow=Decimal("0"))
        result = _engine().project(
            history=_history(),
            anchor=ANCHOR,
            opening_liability=Decimal("100000"),
            overrides=[override],
        )
        bucket = result.bucket("2024-W11")
        assert bucket.is_overridden
        assert bucket.inflow == Decimal("0.00")
        assert bucket.predicted_inflow == Decimal("1000.00")
        assert bucket.outflow == Decimal("100.00")
        assert bucket.net_cash_flow == Decimal("-100.00")
        assert result.override_count == 1

    def test_lock_without_values_is_not_an_override(self):
        result = _engine().project(
            history=_history(),
            anchor=ANCHOR,
            opening_liability=Decimal("100000"),
            overrides=[OverrideValues(bucket_key="2024-W10", locked=True)],
        )
        bucket = result.bucket("2024-W10")
        assert bucket.is_locked
        assert not bucket.is_overridden
        assert result.override_count == 0

    def test_overrides_outside_horizon_are_ignored(self):
        result = _engine().project(
            history=_history(),
            anchor=ANCHOR,
            opening_liability=Decimal("100000"),
            overrides=[OverrideValues(bucket_key="2030-W01", inflow=Decimal("1"))],
        )
        assert result.override_count == 0

    def test_identical_inputs_identical_outputs(self):
        engine = _engine()
        kwargs = dict(history=_history(), anchor=ANCHOR, opening_liability=Decimal("100000"))
        assert engine.project(**kwargs) == engine.project(**kwargs)

    def test_trace_emitted(self, captured_logs):
        _engine().project(history=_history(), anchor=ANCHOR, opening_liability=Decimal("1"))
        traces = [r for r in captured_logs() if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert traces and traces[0]["engine_name"] == "rolling_forecast"
        assert len(traces[0]["input_fingerprint"]) == 16


class TestAlerts:

    def test_negative_cash_flow_keeps_worst_bucket(self):
        result = _engine().project(
            history=_history(inflow="0", outflow="1200", revenue="0"),
            anchor=ANCHOR,
            opening_liability=Decimal("100000"),
        )
        alerts = {a.alert_type: a for a in result.alerts}
        alert = alerts[AlertType.NEGATIVE_CASH_FLOW]
        assert alert.level == AlertLevel.DANGER
        assert alert.bucket_key == "2024-W13"
        assert alert.breach == Decimal("400.00")

    def test_liability_below_floor(self):
        result = _engine().project(
            history=_history(), anchor=ANCHOR, opening_liability=Decimal("1000"),
        )
        alerts = {a.alert_type: a for a in result.alerts}
        assert alerts[AlertType.LIABILITY_LOW].level == AlertLevel.WARNING
        assert alerts[AlertType.LIABILITY_LOW].threshold == Decimal("50000")

    def test_liability_decline_against_opening(self):
        result = _engine().project(
            history=_history(inflow="0", outflow="0", revenue="120000"),
            anchor=ANCHOR,
            opening_liability=Decimal("100000"),
        )
        assert [a.alert_type for a in result.alerts] == [AlertType.LIABILITY_DECLINE]
        alert = result.alerts[0]
        assert alert.bucket_key == "2024-W13"
        assert alert.value == Decimal("0.4000")

    def test_one_alert_per_type(self):
        result = _engine(horizon_weeks=13).project(
            history=_history(inflow="0", outflow="1200", revenue="120000"),
            anchor=ANCHOR,
            opening_liability=Decimal("60000"),
        )
        types = [a.alert_type for a in result.alerts]
        assert len(types) == len(set(types))
        assert set(types) == set(AlertType)
