"""
Values -- Decimal arithmetic helpers shared by every layer.

All monetary and rate arithmetic is ``Decimal``; ``float`` is rejected at the
boundary.  Every intermediate and final amount the engine produces is rounded
to ``ROUNDING_PRECISION`` fractional digits with ROUND_HALF_UP (half away
from zero for the non-negative amounts the engine handles).  Two-digit display
rounding belongs to the presentation layer.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ROUNDING_PRECISION = 4

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """
    Convert ``value`` to ``Decimal`` without passing through binary floats.

    Accepts ``Decimal``, ``int`` and numeric strings.

    Raises:
        TypeError: for ``float``, ``bool`` or any other type.
        ValueError: for strings that are not decimal numbers.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Refusing {type(value).__name__} {value!r}; use Decimal or str"
        )
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Not a decimal number: {value!r}") from None
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")


def round_amount(value: Decimal, precision: int = ROUNDING_PRECISION) -> Decimal:
    """Quantize ``value`` to ``precision`` fractional digits, half up."""
    return value.quantize(Decimal(10) ** -precision, rounding=ROUND_HALF_UP)


def percent_of(
    amount: Decimal,
    percentage: Decimal,
    precision: int = ROUNDING_PRECISION,
) -> Decimal:
    """``amount * percentage / 100`` rounded to ``precision`` digits."""
    return round_amount(amount * percentage / HUNDRED, precision)
