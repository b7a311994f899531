"""Kernel services: sequence generator, audit trail, notifications, contract ledger."""

from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_kernel.services.contract_ledger import ContractLedger
from prepaid_kernel.services.notifications import (
    LedgerNotification,
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationSink,
    RecordingNotificationSink,
)
from prepaid_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditorService",
    "ContractLedger",
    "LedgerNotification",
    "LoggingNotificationSink",
    "NotificationDispatcher",
    "NotificationSink",
    "RecordingNotificationSink",
    "SequenceService",
]
