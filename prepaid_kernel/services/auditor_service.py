"""
Audit trail writer (``prepaid_kernel.services.auditor_service``).

Responsibility:
    Creates append-only, hash-chained ``AuditEvent`` rows for ledger
    mutations and workflow decisions, and verifies the chain.

Architecture position:
    Kernel > Services.  Flush-only; the audit row commits or rolls back with
    the mutation it describes.

Invariants enforced:
    - seq is allocated from the locked ``audit_event`` counter, which also
      serializes chain appends across transactions.
    - hash = H(seq | entity_type | entity_id | action | payload_hash | prev_hash).

Audit relevance:
    ``verify_chain`` recomputes every hash; an edited or deleted row breaks
    the chain at that point.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from prepaid_kernel.domain.clock import Clock, SystemClock
from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.models.audit_event import AuditAction, AuditEvent
from prepaid_kernel.services.sequence_service import SequenceService
from prepaid_kernel.utils.hashing import chain_hash, hash_payload, to_json_document

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditChainReport:
    """Outcome of a full chain verification."""

    valid: bool
    events_checked: int
    broken_at_seq: int | None = None
    reason: str | None = None


class AuditorService:
    """
    Writes and verifies the audit chain.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT interpret events; reporting reads them through queries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Append one audit event.

        Postconditions:
            - A new AuditEvent row is flushed with the next ``seq`` and a
              hash linked to the previous event.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_document(payload or {})
        payload_hash = hash_payload(payload_data)
        event_hash = chain_hash(
            seq=seq,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    def get_trail(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        """All audit events for one entity, in chain order."""
        return list(
            self._session.execute(
                select(AuditEvent)
                .where(AuditEvent.entity_type == entity_type)
                .where(AuditEvent.entity_id == entity_id)
                .order_by(AuditEvent.seq)
            ).scalars()
        )

    def verify_chain(self) -> AuditChainReport:
        """Recompute every hash and check each link to its predecessor."""
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for event in events:
            if event.prev_hash != prev_hash:
                return self._broken(event, len(events), "prev_hash does not match predecessor")
            if hash_payload(event.payload or {}) != event.payload_hash:
                return self._broken(event, len(events), "payload does not match payload_hash")
            expected = chain_hash(
                seq=event.seq,
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if expected != event.hash:
                return self._broken(event, len(events), "stored hash does not match contents")
            prev_hash = event.hash

        return AuditChainReport(valid=True, events_checked=len(events))

    def _broken(self, event: AuditEvent, checked: int, reason: str) -> AuditChainReport:
        logger.critical(
            "audit_chain_broken",
            extra={"seq": event.seq, "audit_event_id": str(event.id), "reason": reason},
        )
        return AuditChainReport(
            valid=False,
            events_checked=checked,
            broken_at_seq=event.seq,
            reason=reason,
        )
