"""Kernel ORM models."""

from prepaid_kernel.models.audit_event import AuditAction, AuditEvent
from prepaid_kernel.models.cash_flow import CashFlowEvent
from prepaid_kernel.models.consumption import ConsumptionRecord
from prepaid_kernel.models.contract import Contract, PaymentRecord

__all__ = [
    "AuditAction",
    "AuditEvent",
    "CashFlowEvent",
    "ConsumptionRecord",
    "Contract",
    "PaymentRecord",
]
