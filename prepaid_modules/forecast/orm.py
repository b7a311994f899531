"""
Forecast ORM Models (``prepaid_modules.forecast.orm``).

Manual overrides of weekly forecast buckets.  One row per (bucket_key,
location_key); a locked row can no longer be adjusted or cleared.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from prepaid_engines.forecast import OverrideValues
from prepaid_kernel.db.base import TrackedBase
from prepaid_modules.forecast.models import ForecastOverrideInfo


class ForecastOverrideModel(TrackedBase):
    """
    Table: ``ledger_forecast_overrides``
    """

    __tablename__ = "ledger_forecast_overrides"

    bucket_key: Mapped[str] = mapped_column(String(8), nullable=False)
    location_key: Mapped[str] = mapped_column(String(36), nullable=False)
    inflow: Mapped[Decimal | None]
    outflow: Mapped[Decimal | None]
    revenue: Mapped[Decimal | None]
    reason: Mapped[str | None] = mapped_column(String(2000))
    adjusted_by_id: Mapped[UUID | None]
    adjusted_at: Mapped[datetime | None]
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_by_id: Mapped[UUID | None]
    locked_at: Mapped[datetime | None]

    __table_args__ = (
        UniqueConstraint("bucket_key", "location_key", name="uq_forecast_override_bucket"),
    )

    def to_dto(self) -> ForecastOverrideInfo:
        return ForecastOverrideInfo(
            id=self.id,
            bucket_key=self.bucket_key,
            location_key=self.location_key,
            inflow=self.inflow,
            outflow=self.outflow,
            revenue=self.revenue,
            reason=self.reason,
            adjusted_by_id=self.adjusted_by_id,
            adjusted_at=self.adjusted_at,
            locked=self.locked,
            locked_by_id=self.locked_by_id,
            locked_at=self.locked_at,
        )

    def to_override_values(self) -> OverrideValues:
        return OverrideValues(
            bucket_key=self.bucket_key,
            inflow=self.inflow,
            outflow=self.outflow,
            revenue=self.revenue,
            locked=self.locked,
            reason=self.reason,
        )

    def __repr__(self) -> str:
        return f"<ForecastOverrideModel {self.location_key}/{self.bucket_key} locked={self.locked}>"
