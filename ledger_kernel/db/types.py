"""
Module: ledger_kernel.db.types
Responsibility: Money coercion and rounding shared by services and selectors.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    CRITICAL: No floats anywhere in the ledger.  All monetary amounts use
    Decimal with two decimal places.  round_money() is the ONLY sanctioned
    rounding function for monetary values.

Failure modes:
    - decimal.InvalidOperation on a non-numeric value passed to to_money().
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)

ZERO = Decimal("0.00")


def round_money(amount: Decimal) -> Decimal:
    """Round a monetary amount to two places, half-up."""
    return amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    """
    Coerce an int, str or Decimal to a rounded money Decimal.

    Floats are rejected: their binary representation cannot carry an exact
    currency amount.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    return round_money(Decimal(str(value)) if not isinstance(value, Decimal) else value)
