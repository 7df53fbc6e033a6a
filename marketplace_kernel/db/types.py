"""
Module: marketplace_kernel.db.types
Responsibility: Column type constants and utility functions for column
    types shared by models and services.  Centralizes precision and rounding
    so that amounts and hours are stored identically everywhere.
Architecture position: Kernel > DB.  May be imported by models/, services/,
    and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money or hours.  All amounts use Decimal with explicit
      precision; round_money() is the single rounding function.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Numeric, String


# Monetary amount: 18 digits, 2 decimal places
Money = Numeric(18, 2, asdecimal=True)

# Logged hours and duration estimates
Hours = Numeric(10, 2, asdecimal=True)

# External identifiers (associate, location, actor ids)
ExternalId = String(64)

# Long text for instructions and notes
LongText = String(4000)


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int/str/Decimal to Decimal.

    Floats are rejected: binary fractions must never reach an amount column.

    Raises:
        TypeError: If value is a float or an unsupported type.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a numeric amount")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f"Unsupported amount type: {type(value).__name__}")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for amounts.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
