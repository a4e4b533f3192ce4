"""
Core Module - Money.

============================================================
RESPONSIBILITY
============================================================
Exact decimal arithmetic for cash, quantities and prices.

The ledger only ever needs add, sub, mul, div, compare and
is_zero. Floats are converted through their shortest repr so
0.1 becomes Decimal("0.1") rather than its binary expansion.

============================================================
"""

from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any, Union

from core.exceptions import InvalidTradeError


Number = Union[Decimal, int, float, str]

MONEY_CONTEXT = Context(prec=34, rounding=ROUND_HALF_UP)
"""Arithmetic context for every money operation."""

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a value to Decimal.

    Raises:
        InvalidTradeError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidTradeError(f"Invalid numeric value: {value!r}")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise InvalidTradeError(f"Invalid numeric value: {value!r}", cause=e) from e
    else:
        raise InvalidTradeError(f"Invalid numeric value: {value!r}")

    if not result.is_finite():
        raise InvalidTradeError(f"Invalid numeric value: {value!r}")
    return result


def add(a: Number, b: Number) -> Decimal:
    return MONEY_CONTEXT.add(to_decimal(a), to_decimal(b))


def sub(a: Number, b: Number) -> Decimal:
    return MONEY_CONTEXT.subtract(to_decimal(a), to_decimal(b))


def mul(a: Number, b: Number) -> Decimal:
    return MONEY_CONTEXT.multiply(to_decimal(a), to_decimal(b))


def div(a: Number, b: Number) -> Decimal:
    divisor = to_decimal(b)
    if divisor.is_zero():
        raise ZeroDivisionError("Division by zero in money arithmetic")
    return MONEY_CONTEXT.divide(to_decimal(a), divisor)


def compare(a: Number, b: Number) -> int:
    """Return -1, 0 or 1."""
    return int(to_decimal(a).compare(to_decimal(b)))


def is_zero(value: Number) -> bool:
    return to_decimal(value).is_zero()


def quantize_cents(value: Number) -> Decimal:
    """Round to two decimals, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize(value: Number) -> Decimal:
    """Strip trailing zeros without switching to exponent notation."""
    d = to_decimal(value)
    if d.is_zero():
        return Decimal(0)
    normalized = d.normalize(MONEY_CONTEXT)
    if normalized.as_tuple().exponent > 0:
        return normalized.quantize(Decimal(1))
    return normalized


def to_float(value: Number) -> float:
    """For JSON payloads shown to the model and to API consumers."""
    return float(to_decimal(value))
