"""
Module: silver_kernel.db.types
Responsibility: Column precision for money, weights and rates, and the rounding
    helpers that quantize Decimal values to that precision.  Every model and
    every calculation uses these definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money is stored with 2 decimal places, weights (grams) with 3, silver
      rates and percentages with 4.
    - round_money() and round_weight() are the ONLY sanctioned rounding
      functions.  Both use ROUND_HALF_UP so that the same input always
      produces the same stored value.
    - No floats anywhere: amounts and weights are Decimal end to end.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Numeric

MONEY_DECIMAL_PLACES = 2
WEIGHT_DECIMAL_PLACES = 3
RATE_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

# Column types
MoneyType = Numeric(20, MONEY_DECIMAL_PLACES)
WeightType = Numeric(20, WEIGHT_DECIMAL_PLACES)
RateType = Numeric(20, RATE_DECIMAL_PLACES)

ZERO = Decimal("0")


def _quantize(value: Decimal, decimal_places: int, rounding: str) -> Decimal:
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the stored money precision.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    return _quantize(value, decimal_places, rounding)


def round_weight(
    value: Decimal,
    decimal_places: int = WEIGHT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a weight in grams to the stored weight precision."""
    return _quantize(value, decimal_places, rounding)


def round_rate(value: Decimal) -> Decimal:
    """Round a rate or percentage to the stored rate precision."""
    return _quantize(value, RATE_DECIMAL_PLACES, DEFAULT_ROUNDING)
