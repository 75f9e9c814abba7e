"""
Money Utilities - Decimal operations for cart prices.

Internal cart arithmetic keeps full Decimal precision; rounding to minor
units happens only when values are presented.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

Number = Union[str, int, float, Decimal]

# Default precision for money operations (2 decimal places)
MONEY_PRECISION = Decimal("0.01")

# Precision for integer currencies
INTEGER_PRECISION = Decimal("1")

CURRENCY_SYMBOLS = {
    "QAR": "QAR",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "SAR": "SAR",
    "AED": "AED",
}

INTEGER_CURRENCIES = {"JPY", "KRW"}


def to_decimal(value: Union[Number, None]) -> Decimal:
    """
    Convert any value to Decimal safely.

    Floats go through their string form so 0.1 stays 0.1.

    Returns:
        Decimal representation of the value, or Decimal("0") if None/invalid
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def parse_decimal(value) -> Decimal | None:
    """
    Strict variant of to_decimal for validating input.

    Returns None for booleans, non-numeric strings, NaN and infinities
    instead of silently mapping them to zero.
    """
    if isinstance(value, bool) or not isinstance(value, (str, int, float, Decimal)):
        return None
    try:
        result = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def round_money(value: Number, to_int: bool = False) -> Decimal:
    """Round monetary value to minor-unit precision (or whole units)."""
    decimal_value = to_decimal(value)
    precision = INTEGER_PRECISION if to_int else MONEY_PRECISION
    return decimal_value.quantize(precision, rounding=ROUND_HALF_UP)


def format_money(value: Number, currency: str = "QAR") -> str:
    """
    Format monetary value with currency symbol.

    Examples:
        format_money(95.5) -> "QAR 95.50"
        format_money(10, "USD") -> "$10.00"
    """
    decimal_value = to_decimal(value)
    symbol = CURRENCY_SYMBOLS.get(currency, currency)

    if currency in INTEGER_CURRENCIES:
        formatted = f"{int(round_money(decimal_value, to_int=True)):,}"
    else:
        formatted = f"{round_money(decimal_value):,.2f}"

    if currency in ("USD", "EUR", "GBP"):
        return f"{symbol}{formatted}"
    return f"{symbol} {formatted}"


def to_float(value: Number) -> float:
    """
    Convert to float for JSON responses.

    Use only at presentation boundaries, not for internal calculations.
    """
    return float(to_decimal(value))
