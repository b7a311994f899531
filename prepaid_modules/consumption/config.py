"""
prepaid_modules.consumption.config
==================================

Responsibility:
    Attendance policy for the consumption engine: which roster statuses
    deduct lessons (and as what consumption type) and which are only noted.

Invariants enforced:
    - Every ``AttendanceStatus`` resolves to a ``ConsumptionType`` or to
      ``None`` (note only).
    - ``absence_deducts`` maps ABSENT to ABSENCE_DEDUCT unless the policy
      maps ABSENT explicitly.
    - ``max_attempts >= 1``.

Failure modes:
    - Invalid values -> ``ValueError`` from ``__post_init__``.
"""

from dataclasses import dataclass, field
from typing import Any, Self

from prepaid_kernel.domain.dtos import ConsumptionType
from prepaid_kernel.logging_config import get_logger
from prepaid_modules.consumption.models import AttendanceStatus

logger = get_logger("modules.consumption.config")

NOTE_ONLY = "note"

DEFAULT_ATTENDANCE_POLICY: dict[AttendanceStatus, ConsumptionType | None] = {
    AttendanceStatus.ATTENDED: ConsumptionType.NORMAL,
    AttendanceStatus.MAKEUP: ConsumptionType.MAKEUP,
    AttendanceStatus.ABSENT: None,
    AttendanceStatus.LEAVE: None,
    AttendanceStatus.PENDING: None,
}


def _policy_value(value: Any) -> ConsumptionType | None:
    if value is None or value == NOTE_ONLY:
        return None
    return ConsumptionType(value)


@dataclass
class ConsumptionConfig:
    """
    Consumption engine settings.

    Example::

        config = ConsumptionConfig(absence_deducts=True)
        config.consumption_type_for(AttendanceStatus.ABSENT)
        # ConsumptionType.ABSENCE_DEDUCT
    """

    absence_deducts: bool = False
    trial_deducts_lessons: bool = False
    attendance_policy: dict[AttendanceStatus, ConsumptionType | None] = field(default_factory=dict)
    require_teacher_at_location: bool = True
    max_attempts: int = 3

    def __post_init__(self):
        explicit = {
            AttendanceStatus(status): _policy_value(value)
            for status, value in self.attendance_policy.items()
        }
        policy = dict(DEFAULT_ATTENDANCE_POLICY)
        if self.absence_deducts:
            policy[AttendanceStatus.ABSENT] = ConsumptionType.ABSENCE_DEDUCT
        policy.update(explicit)
        self.attendance_policy = policy

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        logger.info(
            "consumption_config_initialized",
            extra={
                "absence_deducts": self.absence_deducts,
                "trial_deducts_lessons": self.trial_deducts_lessons,
                "deducting_statuses": sorted(
                    s.value for s, t in self.attendance_policy.items() if t is not None
                ),
            },
        )

    def consumption_type_for(self, status: AttendanceStatus) -> ConsumptionType | None:
        """Consumption type a roster status deducts as, or None to only note it."""
        return self.attendance_policy[AttendanceStatus(status)]

    def deducts(self, consumption_type: ConsumptionType) -> bool:
        """TRIAL lessons deduct only when configured to."""
        if ConsumptionType(consumption_type) == ConsumptionType.TRIAL:
            return self.trial_deducts_lessons
        return True

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("consumption_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "consumption_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
