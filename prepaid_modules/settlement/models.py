"""
Settlement domain models (``prepaid_modules.settlement.models``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class SettlementReportInfo:
    """One location's closed business day.  Immutable once written."""

    id: UUID
    business_date: date
    location_id: UUID
    inflow_total: Decimal
    inflow_count: int
    outflow_total: Decimal
    outflow_count: int
    net_cash_flow: Decimal
    recognized_revenue: Decimal
    consumption_count: int
    consumed_lessons: int
    closing_liability: Decimal
    settled_by_id: UUID
    settled_at: datetime
    snapshot: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SettlementSummary:
    """Reports in a date range with their summed totals."""

    reports: tuple[SettlementReportInfo, ...]
    inflow_total: Decimal
    outflow_total: Decimal
    net_cash_flow: Decimal
    recognized_revenue: Decimal
    consumed_lessons: int

    @property
    def report_count(self) -> int:
        return len(self.reports)
