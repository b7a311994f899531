"""
Module: prepaid_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), delete(),
      commit(), or flush().
    - DTO return convention: selectors return frozen dataclasses or computed
      results, not ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from prepaid_kernel.db.types import round_money


class BaseSelector(ABC):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _money(value: Any) -> Decimal:
        """Normalize an aggregate result (None, Decimal, or a driver float) to cents."""
        if value is None:
            return Decimal("0.00")
        return round_money(Decimal(str(value)))
