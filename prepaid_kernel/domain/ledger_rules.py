"""
Contract ledger rules (``prepaid_kernel.domain.ledger_rules``).

Pure checks over a contract's numbers.  The Contract Ledger runs them after
every mutation, before flush; the ledger selector runs them over stored rows
to audit existing data.

Liability is recognized on the first payment: an unfunded contract
(``paid_amount == 0``) carries no unearned balance; a funded one carries
``amount_for_lessons(unit_price, remain_lessons)`` within one cent.
"""

from __future__ import annotations

from decimal import Decimal

from prepaid_kernel.domain.dtos import CONTRACT_TRANSITIONS, ContractStatus
from prepaid_kernel.domain.money import amount_for_lessons, within_tolerance


def expected_unearned(
    unit_price: Decimal,
    remain_lessons: int,
    paid_amount: Decimal,
    status: ContractStatus,
) -> Decimal:
    if status == ContractStatus.TERMINATED or paid_amount <= 0:
        return Decimal("0.00")
    return amount_for_lessons(unit_price, remain_lessons)


def invariant_violations(
    *,
    total_lessons: int,
    used_lessons: int,
    remain_lessons: int,
    unit_price: Decimal,
    unearned: Decimal,
    paid_amount: Decimal,
    status: ContractStatus,
) -> list[str]:
    """Return human-readable violations; empty when the contract is consistent."""
    violations: list[str] = []
    if used_lessons + remain_lessons != total_lessons:
        violations.append(
            f"used_lessons ({used_lessons}) + remain_lessons ({remain_lessons}) "
            f"!= total_lessons ({total_lessons})"
        )
    if remain_lessons < 0:
        violations.append(f"remain_lessons is negative ({remain_lessons})")
    if used_lessons < 0:
        violations.append(f"used_lessons is negative ({used_lessons})")
    if unearned < 0:
        violations.append(f"unearned is negative ({unearned})")
    expected = expected_unearned(unit_price, remain_lessons, paid_amount, status)
    if not within_tolerance(unearned, expected):
        violations.append(f"unearned {unearned} != expected {expected}")
    if status == ContractStatus.COMPLETED and remain_lessons != 0:
        violations.append(f"COMPLETED contract has {remain_lessons} lessons remaining")
    if status == ContractStatus.ACTIVE and remain_lessons == 0:
        violations.append("ACTIVE contract has no lessons remaining")
    return violations


def is_legal_transition(current: ContractStatus, target: ContractStatus) -> bool:
    return current == target or (current, target) in CONTRACT_TRANSITIONS
