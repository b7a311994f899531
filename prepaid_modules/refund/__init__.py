"""
prepaid_modules.refund
======================

Refund workflow: preview, request, approve/reject, complete, cancel, with
advisory risk scoring and refund reports.  Completion is the only path that
terminates a contract.
"""

from prepaid_modules.refund.config import RefundConfig
from prepaid_modules.refund.models import (
    RefundBreakdown,
    RefundCaseInfo,
    RefundQuote,
    RefundRateRow,
    RefundStatistics,
    RefundStatus,
    RefundType,
)
from prepaid_modules.refund.service import RefundService
from prepaid_modules.refund.workflows import REFUND_WORKFLOW

__all__ = [
    "REFUND_WORKFLOW",
    "RefundBreakdown",
    "RefundCaseInfo",
    "RefundConfig",
    "RefundQuote",
    "RefundRateRow",
    "RefundService",
    "RefundStatistics",
    "RefundStatus",
    "RefundType",
]
