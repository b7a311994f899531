"""
Business numbers (``prepaid_kernel.domain.numbering``).

Human-readable, date-scoped identifiers of the form
``{PREFIX}{YYYYMMDD}{seq:03d}``, e.g. ``HT20241227003``.  The sequence part
is zero-padded to three digits and simply grows wider past 999.

Pure formatting and parsing only; allocation of the sequence value is done
by ``SequenceService.next_business_number`` against a locked counter row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class NumberPrefix(str, Enum):
    """Prefix per kind of business document."""

    CONTRACT = "HT"
    PAYMENT = "CF"
    CONSUMPTION = "XK"
    REFUND = "TF"


_NUMBER_PATTERN = re.compile(r"^(?P<prefix>[A-Z]{2})(?P<day>\d{8})(?P<seq>\d{3,})$")


@dataclass(frozen=True)
class BusinessNumber:
    prefix: NumberPrefix
    business_date: date
    sequence: int

    def __str__(self) -> str:
        return format_business_number(self.prefix, self.business_date, self.sequence)


def counter_name(prefix: NumberPrefix, on_date: date) -> str:
    """Sequence counter key: one counter per prefix per day."""
    return f"{prefix.value}{on_date:%Y%m%d}"


def format_business_number(prefix: NumberPrefix, on_date: date, sequence: int) -> str:
    if sequence <= 0:
        raise ValueError(f"sequence must be positive, got {sequence}")
    return f"{counter_name(prefix, on_date)}{sequence:03d}"


def parse_business_number(number: str) -> BusinessNumber:
    """Split a business number into prefix, date and sequence.

    Raises:
        ValueError: malformed number, unknown prefix or impossible date.
    """
    match = _NUMBER_PATTERN.match(number)
    if match is None:
        raise ValueError(f"Malformed business number: {number!r}")
    prefix = NumberPrefix(match["prefix"])
    day = datetime.strptime(match["day"], "%Y%m%d").date()
    return BusinessNumber(prefix=prefix, business_date=day, sequence=int(match["seq"]))
