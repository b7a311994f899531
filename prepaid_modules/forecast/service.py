"""
prepaid_modules.forecast.service
================================

Responsibility:
    Feeds the rolling forecast engine from the ledger (trailing cash flows,
    recognized revenue, month-over-month inflow growth, current unearned
    liability) and manages manual overrides of forecast buckets.

Architecture:
    Module layer.  ``generate`` is read-only.  Override changes run through
    ``run_in_transaction`` and are audited.

Invariants enforced:
    - A locked bucket can be neither adjusted nor cleared (LockedError).
    - An adjustment sets all three components at once; a component passed
      as None falls back to the system prediction.  At least one component
      must be set and none may be negative (InvalidAmountError).

Failure modes:
    - ValueError for a malformed bucket key (``YYYY-Www``).
    - NotFoundError when clearing a bucket that has no override.
    - ConcurrencyConflictError when a first insert loses to a concurrent
      writer whose row is gone again by the time it is re-read.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from prepaid_engines.forecast import (
    ForecastResult,
    HistoricalStats,
    RollingForecastEngine,
    parse_bucket_key,
    week_start,
)
from prepaid_kernel.db.engine import run_in_transaction
from prepaid_kernel.domain.clock import Clock, SystemClock
from prepaid_kernel.domain.money import to_money
from prepaid_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidAmountError,
    LedgerError,
    LockedError,
    NotFoundError,
)
from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.models.audit_event import AuditAction
from prepaid_kernel.selectors.ledger_selector import LedgerSelector
from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_modules.forecast.config import ForecastConfig
from prepaid_modules.forecast.models import (
    AdjustmentFailure,
    BatchAdjustResult,
    ForecastAdjustment,
    ForecastOverrideInfo,
    location_key,
)
from prepaid_modules.forecast.orm import ForecastOverrideModel

logger = get_logger("modules.forecast.service")


class ForecastService:
    """
    Rolling forecast generation and bucket overrides.

    Non-goals:
        - Does NOT persist forecasts or alerts; both are recomputed on demand.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ForecastConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ForecastConfig.with_defaults()
        self._engine = RollingForecastEngine(self._config.parameters())
        self._auditor = AuditorService(session, self._clock)
        self._selector = LedgerSelector(session)

    # =========================================================================
    # Forecast
    # =========================================================================

    def generate(
        self,
        anchor: date | None = None,
        location_id: UUID | None = None,
    ) -> ForecastResult:
        anchor = anchor or self._clock.today()
        history = self.historical_stats(anchor, location_id)
        opening = self._selector.liability_total(location_id)
        overrides = [o.to_override_values() for o in self._overrides(location_id)]

        result = self._engine.project(
            history=history,
            anchor=anchor,
            opening_liability=opening,
            overrides=overrides,
        )
        logger.info(
            "forecast_generated",
            extra={
                "anchor": anchor.isoformat(),
                "location_key": location_key(location_id),
                "opening_liability": str(opening),
                "ending_liability": str(result.ending_liability),
                "override_count": result.override_count,
                "alert_count": len(result.alerts),
            },
        )
        return result

    def historical_stats(self, anchor: date, location_id: UUID | None = None) -> HistoricalStats:
        """
        Complete weeks before the anchor week, plus month-to-date growth inputs.

        Month-to-date inflow is compared with the whole previous month, or with
        its first ``anchor.day`` days when ``prorate_growth`` is set.
        """
        window_end = week_start(anchor) - timedelta(days=1)
        window_start = week_start(anchor) - timedelta(weeks=self._config.history_weeks)
        cash = self._selector.cash_flow_totals(window_start, window_end, location_id)
        revenue = self._selector.revenue_totals(window_start, window_end, location_id)

        month_start = anchor.replace(day=1)
        previous_month_end = month_start - timedelta(days=1)
        previous_month_start = previous_month_end.replace(day=1)
        if self._config.prorate_growth:
            previous_month_end = min(previous_month_end, previous_month_start + (anchor - month_start))
        current = self._selector.cash_flow_totals(month_start, anchor, location_id)
        previous = self._selector.cash_flow_totals(
            previous_month_start, previous_month_end, location_id,
        )
        return HistoricalStats(
            inflow_total=cash.inflow,
            outflow_total=cash.outflow,
            revenue_total=revenue.amount,
            current_month_inflow=current.inflow,
            previous_month_inflow=previous.inflow,
        )

    # =========================================================================
    # Overrides
    # =========================================================================

    def adjust(
        self,
        bucket_key: str,
        actor_id: UUID,
        location_id: UUID | None = None,
        inflow: Decimal | int | str | None = None,
        outflow: Decimal | int | str | None = None,
        revenue: Decimal | int | str | None = None,
        reason: str | None = None,
    ) -> ForecastOverrideInfo:
        parse_bucket_key(bucket_key)
        values = {
            "inflow": None if inflow is None else to_money(inflow),
            "outflow": None if outflow is None else to_money(outflow),
            "revenue": None if revenue is None else to_money(revenue),
        }
        if all(v is None for v in values.values()):
            raise InvalidAmountError("override", "none", "at least one of inflow, outflow, revenue is required")
        for name, value in values.items():
            if value is not None and value < 0:
                raise InvalidAmountError(name, value, "cannot be negative")

        scope = location_key(location_id)

        def op() -> ForecastOverrideInfo:
            override = self._claim_override(bucket_key, scope, actor_id, "forecast.adjust")
            if override.locked:
                raise LockedError(bucket_key, scope)
            previous = {
                "inflow": override.inflow,
                "outflow": override.outflow,
                "revenue": override.revenue,
            }
            override.inflow = values["inflow"]
            override.outflow = values["outflow"]
            override.revenue = values["revenue"]
            override.reason = reason
            override.adjusted_by_id = actor_id
            override.adjusted_at = self._clock.now()
            override.touched_by(actor_id)
            self._session.flush()

            self._auditor.record(
                "ForecastOverride", override.id, AuditAction.FORECAST_OVERRIDE_SET, actor_id,
                {
                    "bucket_key": bucket_key,
                    "location_key": scope,
                    "values": values,
                    "previous": previous,
                    "reason": reason,
                },
            )
            logger.info(
                "forecast_override_set",
                extra={
                    "bucket_key": bucket_key,
                    "location_key": scope,
                    "inflow": _fmt(values["inflow"]),
                    "outflow": _fmt(values["outflow"]),
                    "revenue": _fmt(values["revenue"]),
                },
            )
            return override.to_dto()

        return self._run(op, "forecast.adjust")

    def batch_adjust(
        self,
        items: Iterable[ForecastAdjustment],
        actor_id: UUID,
    ) -> BatchAdjustResult:
        """Apply each adjustment in its own transaction; failures are collected."""
        adjusted: list[ForecastOverrideInfo] = []
        failures: list[AdjustmentFailure] = []
        for item in items:
            try:
                adjusted.append(self.adjust(
                    item.bucket_key,
                    actor_id,
                    location_id=item.location_id,
                    inflow=item.inflow,
                    outflow=item.outflow,
                    revenue=item.revenue,
                    reason=item.reason,
                ))
            except LedgerError as exc:
                failures.append(AdjustmentFailure(item.bucket_key, exc.code, str(exc)))
            except ValueError as exc:
                failures.append(AdjustmentFailure(item.bucket_key, "INVALID_BUCKET_KEY", str(exc)))
        return BatchAdjustResult(adjusted=tuple(adjusted), failures=tuple(failures))

    def lock(
        self,
        bucket_keys: Sequence[str],
        actor_id: UUID,
        location_id: UUID | None = None,
    ) -> list[ForecastOverrideInfo]:
        """Lock buckets; a bucket without an override is locked at its prediction."""
        for key in bucket_keys:
            parse_bucket_key(key)
        scope = location_key(location_id)

        def op() -> list[ForecastOverrideInfo]:
            locked = []
            now = self._clock.now()
            for key in bucket_keys:
                override = self._claim_override(key, scope, actor_id, "forecast.lock")
                if override.locked:
                    locked.append(override)
                    continue
                override.locked = True
                override.locked_by_id = actor_id
                override.locked_at = now
                override.touched_by(actor_id)
                self._session.flush()
                self._auditor.record(
                    "ForecastOverride", override.id, AuditAction.FORECAST_OVERRIDE_LOCKED,
                    actor_id, {"bucket_key": key, "location_key": scope},
                )
                locked.append(override)
            logger.info(
                "forecast_buckets_locked",
                extra={"bucket_keys": list(bucket_keys), "location_key": scope},
            )
            return [o.to_dto() for o in locked]

        return self._run(op, "forecast.lock")

    def clear(
        self,
        bucket_key: str,
        actor_id: UUID,
        location_id: UUID | None = None,
    ) -> None:
        parse_bucket_key(bucket_key)
        scope = location_key(location_id)

        def op() -> None:
            override = self._lock_override(bucket_key, scope)
            if override is None:
                raise NotFoundError("ForecastOverride", f"{scope}/{bucket_key}")
            if override.locked:
                raise LockedError(bucket_key, scope)
            self._auditor.record(
                "ForecastOverride", override.id, AuditAction.FORECAST_OVERRIDE_CLEARED, actor_id,
                {
                    "bucket_key": bucket_key,
                    "location_key": scope,
                    "previous": {
                        "inflow": override.inflow,
                        "outflow": override.outflow,
                        "revenue": override.revenue,
                    },
                },
            )
            self._session.delete(override)
            self._session.flush()
            logger.info(
                "forecast_override_cleared",
                extra={"bucket_key": bucket_key, "location_key": scope},
            )

        self._run(op, "forecast.clear")

    def get_override(
        self,
        bucket_key: str,
        location_id: UUID | None = None,
    ) -> ForecastOverrideInfo | None:
        override = self._session.execute(
            select(ForecastOverrideModel).where(
                ForecastOverrideModel.bucket_key == bucket_key,
                ForecastOverrideModel.location_key == location_key(location_id),
            )
        ).scalar_one_or_none()
        return override.to_dto() if override else None

    def history(self, location_id: UUID | None = None) -> list[ForecastOverrideInfo]:
        """Every stored override for the scope, oldest bucket first."""
        return [o.to_dto() for o in self._overrides(location_id)]

    # =========================================================================
    # Internals
    # =========================================================================

    def _run(self, op, name: str):
        return run_in_transaction(
            self._session, op, name=name, max_attempts=self._config.max_attempts,
        )

    def _overrides(self, location_id: UUID | None) -> list[ForecastOverrideModel]:
        return list(self._session.execute(
            select(ForecastOverrideModel)
            .where(ForecastOverrideModel.location_key == location_key(location_id))
            .order_by(ForecastOverrideModel.bucket_key)
        ).scalars())

    def _lock_override(self, bucket_key: str, scope: str) -> ForecastOverrideModel | None:
        return self._session.execute(
            select(ForecastOverrideModel)
            .where(
                ForecastOverrideModel.bucket_key == bucket_key,
                ForecastOverrideModel.location_key == scope,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _claim_override(
        self, bucket_key: str, scope: str, actor_id: UUID, operation: str,
    ) -> ForecastOverrideModel:
        """Locked override row for the bucket, inserting an empty one on first use."""
        override = self._lock_override(bucket_key, scope)
        if override is not None:
            return override

        savepoint = self._session.begin_nested()
        try:
            override = ForecastOverrideModel(
                bucket_key=bucket_key,
                location_key=scope,
                locked=False,
                created_by_id=actor_id,
            )
            self._session.add(override)
            self._session.flush()
        except IntegrityError:
            # A concurrent writer inserted the same bucket first; adopt its row.
            savepoint.rollback()
            logger.debug(
                "forecast_override_insert_lost",
                extra={"bucket_key": bucket_key, "location_key": scope},
            )
            override = self._lock_override(bucket_key, scope)
            if override is None:
                raise ConcurrencyConflictError(operation, 1)
            return override
        savepoint.commit()
        return override


def _fmt(value: Decimal | None) -> str | None:
    return None if value is None else str(value)
