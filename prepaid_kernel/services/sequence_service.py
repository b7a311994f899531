"""
Sequence generator (``prepaid_kernel.services.sequence_service``).

Responsibility:
    Allocates strictly monotonic integers per named counter and formats the
    date-scoped business numbers (``HT20241227003``) used for contracts,
    payments, consumption records and refund cases.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - Counters are rows in ``ledger_sequence_counters`` incremented under
      ``SELECT ... FOR UPDATE``.  Never read-max-plus-one, never an
      in-process counter, so two servers cannot hand out the same number.
    - A counter's first use inserts its row inside a SAVEPOINT; a concurrent
      creator's IntegrityError rolls back only the savepoint and the
      allocation is retried against the winner's row.

Failure modes:
    - A rolled-back caller transaction returns its value to the counter
      (numbers are gap-free under normal operation).

Audit relevance:
    Audit event ``seq`` values come from here, so the audit chain order is
    the counter order.
"""

from datetime import date

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from prepaid_kernel.db.base import Base
from prepaid_kernel.domain.numbering import (
    NumberPrefix,
    counter_name,
    format_business_number,
)
from prepaid_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter.  ``current_value`` is the last number handed out."""

    __tablename__ = "ledger_sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """Allocates counter values and business numbers inside the caller's transaction.

    Never commits.  A counter row stays locked until the caller's unit of
    work ends, which is what serializes concurrent allocations.
    """

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def _select_counter(self, name: str, *, lock: bool):
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _claim_counter(self, name: str) -> SequenceCounter:
        """Locked counter row for ``name``, inserting it at 0 on first use."""
        counter = self._select_counter(name, lock=True)
        if counter is not None:
            return counter

        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            # Lost the insert race; the winner's row is now visible.
            savepoint.rollback()
            logger.debug("sequence_counter_insert_lost", extra={"sequence_name": name})
            counter = self._select_counter(name, lock=True)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        logger.debug("sequence_counter_created", extra={"sequence_name": name})
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Next value of ``sequence_name``: 1 on first use, then strictly increasing."""
        counter = self._claim_counter(sequence_name)
        counter.current_value += 1
        self._session.flush()
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last allocated value, or None for a counter that was never used."""
        counter = self._select_counter(sequence_name, lock=False)
        return counter.current_value if counter else None

    def next_business_number(self, prefix: NumberPrefix, on_date: date) -> str:
        """
        Allocate the next ``{PREFIX}{YYYYMMDD}{seq:03d}`` number for ``on_date``.

        Each prefix has its own counter per calendar day, so numbering
        restarts at 001 every day.
        """
        value = self.next_value(counter_name(prefix, on_date))
        number = format_business_number(prefix, on_date, value)
        logger.debug(
            "business_number_allocated",
            extra={"prefix": prefix.value, "business_number": number},
        )
        return number
