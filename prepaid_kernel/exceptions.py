"""
Typed Exception Hierarchy for the Prepaid Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API handlers, batch jobs, the CLI) must react to ledger failures
without parsing message text:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (contract id, requested lessons, ...)

Example:
    try:
        ledger.consume(contract_id, 3, actor_id=operator)
    except InsufficientBalanceError as e:
        api_response(code=e.code, remaining=e.remain_lessons)

Every error here is recoverable at the caller.  A failed mutation leaves
state unchanged because the owning transaction is rolled back.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- NotFoundError
    |
    +-- InvalidStateError
    |   +-- InvalidTransitionError
    |   +-- LedgerInvariantError
    |
    +-- InsufficientBalanceError
    +-- InvalidAmountError
    +-- ConflictingRequestError
    +-- AlreadySettledError
    +-- LockedError
    +-- ConcurrencyConflictError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                  | When Raised
----------------------|-------------------------------------------------
NOT_FOUND             | Entity id does not resolve
INVALID_STATE         | Operation illegal for current lifecycle status
INVALID_TRANSITION    | Refund workflow edge is not declared
LEDGER_INVARIANT      | Mutation would break contract invariants
INSUFFICIENT_BALANCE  | Lesson count exceeds remaining lessons
INVALID_AMOUNT        | Non-positive or out-of-range money / counts
CONFLICTING_REQUEST   | A refund for the contract is already in flight
ALREADY_SETTLED       | Settlement exists for (date, location)
LOCKED                | Forecast override on a locked bucket
CONCURRENCY_CONFLICT  | Optimistic version retries exhausted
CONFIGURATION_ERROR   | Settings document is invalid
"""

from decimal import Decimal


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


class NotFoundError(LedgerError):
    """Entity with the given id was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvalidStateError(LedgerError):
    """Operation is not allowed for the entity's current status."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        message: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_status = current_status
        super().__init__(
            message
            or f"{entity_type} {entity_id} is {current_status}; operation not allowed"
        )


class InvalidTransitionError(InvalidStateError):
    """Workflow transition is not declared for the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, entity_id: str, from_state: str, action: str):
        self.workflow = workflow
        self.action = action
        super().__init__(
            workflow,
            entity_id,
            from_state,
            f"{workflow}: no transition '{action}' from {from_state} "
            f"(entity {entity_id})",
        )


class LedgerInvariantError(InvalidStateError):
    """A contract mutation would leave the contract inconsistent."""

    code: str = "LEDGER_INVARIANT"

    def __init__(self, contract_id: str, status: str, violations: list[str]):
        self.violations = list(violations)
        super().__init__(
            "Contract",
            contract_id,
            status,
            f"Contract {contract_id} invariant violated: {'; '.join(violations)}",
        )


class InsufficientBalanceError(LedgerError):
    """Requested lesson count exceeds the contract's remaining lessons."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, contract_id: str, requested: int, remain_lessons: int):
        self.contract_id = str(contract_id)
        self.requested = requested
        self.remain_lessons = remain_lessons
        super().__init__(
            f"Contract {contract_id} has {remain_lessons} lessons remaining, "
            f"{requested} requested"
        )


class InvalidAmountError(LedgerError):
    """Amount or count is out of the allowed range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Decimal | int | str, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class ConflictingRequestError(LedgerError):
    """Another request for the same contract is still in flight."""

    code: str = "CONFLICTING_REQUEST"

    def __init__(self, contract_id: str, existing_id: str | None = None):
        self.contract_id = str(contract_id)
        self.existing_id = str(existing_id) if existing_id else None
        super().__init__(
            f"Contract {contract_id} already has a refund in flight"
            + (f": {existing_id}" if existing_id else "")
        )


class AlreadySettledError(LedgerError):
    """Settlement already exists for the (date, location) key."""

    code: str = "ALREADY_SETTLED"

    def __init__(self, business_date: str, location_id: str):
        self.business_date = str(business_date)
        self.location_id = str(location_id)
        super().__init__(
            f"Location {location_id} is already settled for {business_date}"
        )


class LockedError(LedgerError):
    """Forecast bucket override is locked."""

    code: str = "LOCKED"

    def __init__(self, bucket_key: str, location_key: str):
        self.bucket_key = bucket_key
        self.location_key = location_key
        super().__init__(
            f"Forecast bucket {bucket_key} ({location_key}) is locked"
        )


class ConcurrencyConflictError(LedgerError):
    """Optimistic version conflict persisted after all retry attempts."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} hit a concurrent modification {attempts} times"
        )


class ConfigurationError(LedgerError):
    """Settings document failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
