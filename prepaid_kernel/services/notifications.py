"""
Ledger notifications (``prepaid_kernel.services.notifications``).

Responsibility:
    Fans out ledger events (consumption recorded/revoked, refund
    requested/approved/rejected/completed/cancelled) to subscribed sinks such
    as an external audit feed or a notification service.

Architecture position:
    Kernel > Services.  Module services publish *after* their transaction
    commits; nothing here touches the database session.

Failure modes:
    - A sink that raises is logged with its traceback and skipped.  Delivery
      failure never propagates to the caller, so it can never roll back a
      committed ledger change.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from prepaid_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@dataclass(frozen=True)
class LedgerNotification:
    """One published ledger event, e.g. ``refund.completed``."""

    event_type: str
    entity_type: str
    entity_id: UUID
    actor_id: UUID
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationSink(ABC):
    """Subscriber interface; extend for a concrete transport."""

    @abstractmethod
    def sink_name(self) -> str:
        ...

    @abstractmethod
    def publish(self, notification: LedgerNotification) -> None:
        ...


class LoggingNotificationSink(NotificationSink):
    """Writes every notification to the structured log."""

    def sink_name(self) -> str:
        return "log"

    def publish(self, notification: LedgerNotification) -> None:
        logger.info(
            "ledger_notification",
            extra={
                "event_type": notification.event_type,
                "entity_type": notification.entity_type,
                "entity_id": str(notification.entity_id),
                "actor_id": str(notification.actor_id),
            },
        )


class RecordingNotificationSink(NotificationSink):
    """Keeps notifications in memory (development and tests)."""

    def __init__(self) -> None:
        self.received: list[LedgerNotification] = []

    def sink_name(self) -> str:
        return "recording"

    def publish(self, notification: LedgerNotification) -> None:
        self.received.append(notification)

    def event_types(self) -> list[str]:
        return [n.event_type for n in self.received]


class NotificationDispatcher:
    """Delivers each notification to every sink, log-and-continue."""

    def __init__(self, sinks: list[NotificationSink] | None = None):
        self._sinks: list[NotificationSink] = list(sinks or [])

    def subscribe(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def dispatch(self, notification: LedgerNotification) -> int:
        """Publish to all sinks; returns how many accepted it."""
        delivered = 0
        for sink in self._sinks:
            try:
                sink.publish(notification)
                delivered += 1
            except Exception:
                logger.warning(
                    "notification_delivery_failed",
                    extra={
                        "sink": sink.sink_name(),
                        "event_type": notification.event_type,
                        "entity_id": str(notification.entity_id),
                    },
                    exc_info=True,
                )
        return delivered
