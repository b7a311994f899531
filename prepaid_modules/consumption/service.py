"""
prepaid_modules.consumption.service
===================================

Responsibility:
    The consumption engine: validates the teaching session (teacher,
    location, contract ownership), applies the attendance policy, and turns
    attended lessons into ledger consumptions.  Also revokes consumptions
    and reports per-teacher totals.

Architecture:
    Module layer.  Owns transactions via ``run_in_transaction``; the ledger
    is flush-only.  Notifications go out after commit.

Invariants enforced:
    - Each roster entry runs in its own transaction: one failing entry
      never rolls back another.
    - Non-deducting attendance (and TRIAL unless configured) writes an
      audit note and no ledger mutation.
    - A contract is only consumed at the location it was signed at.

Failure modes:
    - Single ``consume``: NotFoundError / InvalidStateError for teacher,
      location or contract; ledger errors propagate after rollback.
    - ``consume_batch``: session-level validation errors raise; per-entry
      ledger errors are collected as ``ConsumptionFailure`` items.

Audit relevance:
    Every consumption and revocation is audited by the ledger; notes are
    audited here as ATTENDANCE_NOTED.
"""

from __future__ import annotations

from datetime import date
from functools import partial
from uuid import UUID

from sqlalchemy.orm import Session

from prepaid_kernel.db.engine import run_in_transaction
from prepaid_kernel.domain.clock import Clock, SystemClock
from prepaid_kernel.domain.dtos import ConsumptionInfo, ConsumptionType
from prepaid_kernel.domain.reference import CatalogPort, DirectoryPort
from prepaid_kernel.exceptions import InvalidStateError, LedgerError, NotFoundError
from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.models.audit_event import AuditAction
from prepaid_kernel.selectors.ledger_selector import LedgerSelector
from prepaid_kernel.services.auditor_service import AuditorService
from prepaid_kernel.services.contract_ledger import ContractLedger
from prepaid_kernel.services.notifications import LedgerNotification, NotificationDispatcher
from prepaid_modules.consumption.config import ConsumptionConfig
from prepaid_modules.consumption.models import (
    AttendanceNote,
    AttendanceStatus,
    BatchConsumptionRequest,
    BatchConsumptionResult,
    ConsumptionFailure,
    ConsumptionSuccess,
    TeacherStatistics,
)

logger = get_logger("modules.consumption.service")


class ConsumptionService:
    """
    Single and roster consumption over the Contract Ledger.

    Non-goals:
        - Does NOT schedule lessons or keep rosters.
        - Does NOT decide amounts; the ledger prices every consumption.
    """

    def __init__(
        self,
        session: Session,
        catalog: CatalogPort,
        directory: DirectoryPort,
        clock: Clock | None = None,
        config: ConsumptionConfig | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self._session = session
        self._directory = directory
        self._clock = clock or SystemClock()
        self._config = config or ConsumptionConfig.with_defaults()
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._auditor = AuditorService(session, self._clock)
        self._ledger = ContractLedger(session, catalog, directory, self._clock, self._auditor)
        self._selector = LedgerSelector(session)

    # =========================================================================
    # Mutations
    # =========================================================================

    def consume(
        self,
        contract_id: UUID,
        lesson_count: int,
        actor_id: UUID,
        teacher_id: UUID,
        location_id: UUID,
        session_date: date | None = None,
        consumption_type: ConsumptionType = ConsumptionType.NORMAL,
        remark: str | None = None,
    ) -> ConsumptionInfo | None:
        """
        Consume lessons for one student.

        Returns the consumption record, or None when ``consumption_type`` is
        TRIAL and trial lessons are configured not to deduct (the lesson is
        noted in the audit trail instead).
        """
        self._validate_session(teacher_id, location_id)
        consumption_type = ConsumptionType(consumption_type)
        day = session_date or self._clock.today()

        if not self._config.deducts(consumption_type):
            run_in_transaction(
                self._session,
                partial(
                    self._note, contract_id, location_id, teacher_id, day,
                    consumption_type.value, actor_id, remark,
                ),
                name="consumption.note",
                max_attempts=self._config.max_attempts,
            )
            return None

        record = run_in_transaction(
            self._session,
            partial(
                self._consume_at_location, contract_id, location_id, lesson_count,
                actor_id, teacher_id, day, consumption_type, remark,
            ),
            name="consumption.consume",
            max_attempts=self._config.max_attempts,
        )
        self._publish("consumption.recorded", record, actor_id)
        return record

    def consume_batch(self, request: BatchConsumptionRequest) -> BatchConsumptionResult:
        """
        Apply a session roster entry by entry.

        Raises:
            NotFoundError / InvalidStateError: the teacher or location is
                unknown or inactive (nothing is applied).
        """
        self._validate_session(request.teacher_id, request.location_id)

        successes: list[ConsumptionSuccess] = []
        notes: list[AttendanceNote] = []
        failures: list[ConsumptionFailure] = []

        for entry in request.entries:
            consumption_type = self._config.consumption_type_for(entry.status)
            try:
                if consumption_type is None or not self._config.deducts(consumption_type):
                    run_in_transaction(
                        self._session,
                        partial(
                            self._note, entry.contract_id, request.location_id,
                            request.teacher_id, request.session_date,
                            AttendanceStatus(entry.status).value, request.actor_id,
                            entry.remark,
                        ),
                        name="consumption.batch_note",
                        max_attempts=self._config.max_attempts,
                    )
                    notes.append(AttendanceNote(entry.contract_id, entry.status, entry.remark))
                    continue

                record = run_in_transaction(
                    self._session,
                    partial(
                        self._consume_at_location, entry.contract_id,
                        request.location_id, entry.lesson_count, request.actor_id,
                        request.teacher_id, request.session_date, consumption_type,
                        entry.remark,
                    ),
                    name="consumption.batch_consume",
                    max_attempts=self._config.max_attempts,
                )
            except LedgerError as exc:
                failures.append(ConsumptionFailure(
                    contract_id=entry.contract_id,
                    attendance=entry.status,
                    error_code=exc.code,
                    message=str(exc),
                ))
                continue

            successes.append(ConsumptionSuccess(
                contract_id=entry.contract_id,
                attendance=entry.status,
                record_id=record.id,
                record_no=record.record_no,
                consumption_type=record.consumption_type,
                lesson_count=record.lesson_count,
                amount=record.amount,
                before_remain=record.before_remain,
                after_remain=record.after_remain,
                before_unearned=record.before_unearned,
                after_unearned=record.after_unearned,
            ))
            self._publish("consumption.recorded", record, request.actor_id)

        result = BatchConsumptionResult(
            session_date=request.session_date,
            teacher_id=request.teacher_id,
            location_id=request.location_id,
            successes=tuple(successes),
            notes=tuple(notes),
            failures=tuple(failures),
        )
        logger.info(
            "consumption_batch_completed",
            extra={
                "teacher_id": str(request.teacher_id),
                "location_id": str(request.location_id),
                "session_date": request.session_date.isoformat(),
                "success_count": result.success_count,
                "noted_count": result.noted_count,
                "failed_count": result.failed_count,
                "total_lessons": result.total_lessons,
                "total_amount": str(result.total_amount),
            },
        )
        return result

    def revoke(self, record_id: UUID, reason: str, actor_id: UUID) -> ConsumptionInfo:
        record = run_in_transaction(
            self._session,
            lambda: self._ledger.revoke_consumption(record_id, reason, actor_id),
            name="consumption.revoke",
            max_attempts=self._config.max_attempts,
        )
        self._publish("consumption.revoked", record, actor_id)
        return record

    # =========================================================================
    # Queries
    # =========================================================================

    def list_records(
        self,
        contract_id: UUID | None = None,
        location_id: UUID | None = None,
        teacher_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
        include_revoked: bool = False,
    ) -> list[ConsumptionInfo]:
        return self._selector.consumption_records(
            contract_id=contract_id,
            location_id=location_id,
            teacher_id=teacher_id,
            start=start,
            end=end,
            include_revoked=include_revoked,
        )

    def teacher_statistics(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> list[TeacherStatistics]:
        stats = []
        for row in self._selector.revenue_by_teacher(start, end, location_id):
            teacher = self._directory.get_teacher(row.teacher_id)
            stats.append(TeacherStatistics(
                teacher_id=row.teacher_id,
                teacher_name=teacher.name if teacher else None,
                lesson_count=row.lessons,
                amount=row.amount,
                record_count=row.record_count,
            ))
        return stats

    # =========================================================================
    # Internals
    # =========================================================================

    def _validate_session(self, teacher_id: UUID, location_id: UUID) -> None:
        location = self._directory.get_location(location_id)
        if location is None:
            raise NotFoundError("Location", str(location_id))
        if not location.active:
            raise InvalidStateError("Location", str(location_id), "inactive")
        teacher = self._directory.get_teacher(teacher_id)
        if teacher is None:
            raise NotFoundError("Teacher", str(teacher_id))
        if not teacher.active:
            raise InvalidStateError("Teacher", str(teacher_id), "inactive")
        if (
            self._config.require_teacher_at_location
            and teacher.location_ids
            and location_id not in teacher.location_ids
        ):
            raise InvalidStateError(
                "Teacher", str(teacher_id), "unassigned",
                f"Teacher {teacher.name} does not teach at location {location.name}",
            )

    def _check_location(self, contract_id: UUID, location_id: UUID) -> None:
        contract = self._ledger.get_contract(contract_id)
        if contract.location_id != location_id:
            raise InvalidStateError(
                "Contract", str(contract_id), contract.status.value,
                f"Contract {contract.contract_no} belongs to another location",
            )

    def _consume_at_location(
        self,
        contract_id: UUID,
        location_id: UUID,
        lesson_count: int,
        actor_id: UUID,
        teacher_id: UUID,
        session_date: date,
        consumption_type: ConsumptionType,
        remark: str | None,
    ) -> ConsumptionInfo:
        self._check_location(contract_id, location_id)
        return self._ledger.consume(
            contract_id,
            lesson_count,
            actor_id,
            teacher_id=teacher_id,
            session_date=session_date,
            consumption_type=consumption_type,
            remark=remark,
        )

    def _note(
        self,
        contract_id: UUID,
        location_id: UUID,
        teacher_id: UUID,
        session_date: date,
        attendance: str,
        actor_id: UUID,
        remark: str | None,
    ) -> None:
        self._check_location(contract_id, location_id)
        self._auditor.record(
            "Contract", contract_id, AuditAction.ATTENDANCE_NOTED, actor_id,
            {
                "attendance": attendance,
                "teacher_id": teacher_id,
                "session_date": session_date,
                "remark": remark,
            },
        )
        logger.info(
            "attendance_noted",
            extra={
                "contract_id": str(contract_id),
                "attendance": attendance,
                "session_date": session_date.isoformat(),
            },
        )

    def _publish(self, event_type: str, record: ConsumptionInfo, actor_id: UUID) -> None:
        self._dispatcher.dispatch(LedgerNotification(
            event_type=event_type,
            entity_type="ConsumptionRecord",
            entity_id=record.id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload={
                "record_no": record.record_no,
                "contract_id": str(record.contract_id),
                "lesson_count": record.lesson_count,
                "amount": str(record.amount),
                "status": record.status.value,
            },
        ))
