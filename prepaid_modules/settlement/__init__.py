"""
prepaid_modules.settlement
==========================

Daily settlement: one immutable report per business day and location,
closing that day's cash flows, recognized revenue and liability.
"""

from prepaid_modules.settlement.models import SettlementReportInfo, SettlementSummary
from prepaid_modules.settlement.service import SettlementService

__all__ = ["SettlementReportInfo", "SettlementService", "SettlementSummary"]
