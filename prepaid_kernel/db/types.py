"""
Module: prepaid_kernel.db.types
Responsibility: Column types and rounding primitives for ledger amounts.
    Centralizes precision and rounding so that every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money is stored with MONEY_DECIMAL_PLACES (2) fractional digits; bare
      ``Mapped[Decimal]`` columns get MONEY_COLUMN through the declarative
      base's type map.
    - Unit prices are stored with UNIT_PRICE_DECIMAL_PLACES (6) so that
      re-multiplying by a lesson count lands within one cent of the
      contract value.  Unit price columns pass UNIT_PRICE_COLUMN to
      ``mapped_column`` explicitly.
    - round_money() and round_unit_price() are the ONLY sanctioned rounding
      functions; both use ROUND_HALF_UP.
    CRITICAL: No floats anywhere in the ledger.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Numeric

MONEY_DECIMAL_PLACES = 2
UNIT_PRICE_DECIMAL_PLACES = 6
DEFAULT_ROUNDING = ROUND_HALF_UP

MONEY_COLUMN = Numeric(18, MONEY_DECIMAL_PLACES)
UNIT_PRICE_COLUMN = Numeric(18, UNIT_PRICE_DECIMAL_PLACES)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for money in the ledger.
    All other code MUST delegate rounding here.
    """
    if decimal_places == 0:
        return value.quantize(Decimal("1"), rounding=rounding)
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_unit_price(value: Decimal) -> Decimal:
    """Round a per-lesson unit price to its storage precision."""
    return round_money(value, UNIT_PRICE_DECIMAL_PLACES)
