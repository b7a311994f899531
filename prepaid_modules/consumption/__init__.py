"""
prepaid_modules.consumption
===========================

Consumption engine: single, roster (batch) and typed lesson consumption
with a configurable attendance policy, revocation, and teacher statistics.
"""

from prepaid_modules.consumption.config import ConsumptionConfig
from prepaid_modules.consumption.models import (
    AttendanceEntry,
    AttendanceNote,
    AttendanceStatus,
    BatchConsumptionRequest,
    BatchConsumptionResult,
    ConsumptionFailure,
    ConsumptionSuccess,
    TeacherStatistics,
)
from prepaid_modules.consumption.service import ConsumptionService

__all__ = [
    "AttendanceEntry",
    "AttendanceNote",
    "AttendanceStatus",
    "BatchConsumptionRequest",
    "BatchConsumptionResult",
    "ConsumptionConfig",
    "ConsumptionFailure",
    "ConsumptionService",
    "ConsumptionSuccess",
    "TeacherStatistics",
]
