"""
Monetary arithmetic (``prepaid_kernel.domain.money``).

Responsibility
--------------
Decimal-only arithmetic for ledger amounts: construction, add, subtract,
multiply, unit-price division, comparison, and tolerance checks.

Architecture position
---------------------
**Kernel domain layer** -- pure functions, zero I/O.  Rounding itself is
delegated to ``prepaid_kernel.db.types.round_money`` / ``round_unit_price``.

Invariants enforced
-------------------
* Floats are rejected at the boundary (``TypeError``).  Construct money
  from ``Decimal``, ``int`` or ``str``.
* Unit price is divided once, rounded half-up to six places, and every
  re-multiplication goes through ``amount_for_lessons`` which rounds
  half-up to cents.  Using one rule in both directions keeps
  ``unearned == unit_price * remain_lessons`` stable across many small
  consumptions.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from prepaid_kernel.db.types import CENT, ZERO, round_money, round_unit_price

MONEY_TOLERANCE = CENT


def to_money(value: Decimal | int | str) -> Decimal:
    """Convert ``value`` to a Decimal rounded to cents.

    Raises:
        TypeError: ``value`` is a float (or bool).
        ValueError: ``value`` is not numeric.
    """
    if isinstance(value, (float, bool)):
        raise TypeError(f"Money must not be constructed from {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        return round_money(value)
    try:
        return round_money(Decimal(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid money value: {value!r}") from exc


def add(*amounts: Decimal) -> Decimal:
    total = ZERO
    for amount in amounts:
        total += amount
    return round_money(total)


def subtract(minuend: Decimal, subtrahend: Decimal) -> Decimal:
    return round_money(minuend - subtrahend)


def multiply(amount: Decimal, factor: Decimal | int) -> Decimal:
    """Multiply and round to cents."""
    return round_money(amount * factor)


def divide_unit_price(contract_value: Decimal, total_lessons: int) -> Decimal:
    """Per-lesson unit price, rounded half-up to unit-price precision.

    Raises:
        ValueError: ``total_lessons`` is not positive.
    """
    if total_lessons <= 0:
        raise ValueError(f"total_lessons must be positive, got {total_lessons}")
    return round_unit_price(contract_value / Decimal(total_lessons))


def amount_for_lessons(unit_price: Decimal, lesson_count: int) -> Decimal:
    """Money value of ``lesson_count`` lessons at ``unit_price``."""
    return round_money(unit_price * Decimal(lesson_count))


def compare(left: Decimal, right: Decimal) -> int:
    """Three-way comparison at cent precision: -1, 0 or 1."""
    a, b = round_money(left), round_money(right)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def within_tolerance(
    actual: Decimal,
    expected: Decimal,
    tolerance: Decimal = MONEY_TOLERANCE,
) -> bool:
    return abs(actual - expected) <= tolerance


def ratio(numerator: Decimal, denominator: Decimal, places: int = 4) -> Decimal:
    """``numerator / denominator`` rounded to ``places``; zero when the denominator is zero."""
    if denominator == 0:
        return round_money(Decimal(0), places)
    return round_money(numerator / denominator, places)
