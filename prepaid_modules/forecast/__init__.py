"""
prepaid_modules.forecast
========================

Rolling weekly forecast of cash flow, recognized revenue and unearned
liability, with manual bucket overrides and locks.
"""

from prepaid_modules.forecast.config import ForecastConfig
from prepaid_modules.forecast.models import (
    ALL_LOCATIONS,
    AdjustmentFailure,
    BatchAdjustResult,
    ForecastAdjustment,
    ForecastOverrideInfo,
    location_key,
)
from prepaid_modules.forecast.service import ForecastService

__all__ = [
    "ALL_LOCATIONS",
    "AdjustmentFailure",
    "BatchAdjustResult",
    "ForecastAdjustment",
    "ForecastConfig",
    "ForecastOverrideInfo",
    "ForecastService",
    "location_key",
]
