"""
Forecast override models (``prepaid_modules.forecast.models``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

ALL_LOCATIONS = "ALL"


def location_key(location_id: UUID | None) -> str:
    """Override scope: a location id, or ``ALL`` for the company-wide forecast."""
    return ALL_LOCATIONS if location_id is None else str(location_id)


@dataclass(frozen=True)
class ForecastOverrideInfo:
    id: UUID
    bucket_key: str
    location_key: str
    inflow: Decimal | None
    outflow: Decimal | None
    revenue: Decimal | None
    reason: str | None
    adjusted_by_id: UUID | None
    adjusted_at: datetime | None
    locked: bool
    locked_by_id: UUID | None = None
    locked_at: datetime | None = None


@dataclass(frozen=True)
class ForecastAdjustment:
    """One item of a batch adjustment."""

    bucket_key: str
    inflow: Decimal | None = None
    outflow: Decimal | None = None
    revenue: Decimal | None = None
    reason: str | None = None
    location_id: UUID | None = None


@dataclass(frozen=True)
class AdjustmentFailure:
    bucket_key: str
    error_code: str
    message: str


@dataclass(frozen=True)
class BatchAdjustResult:
    adjusted: tuple[ForecastOverrideInfo, ...] = ()
    failures: tuple[AdjustmentFailure, ...] = ()

    @property
    def success_count(self) -> int:
        return len(self.adjusted)

    @property
    def failed_count(self) -> int:
        return len(self.failures)
