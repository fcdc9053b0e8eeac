"""
Pure domain helpers: clock abstraction and Decimal arithmetic.

No ORM, database or I/O dependencies.
"""

from taxation_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from taxation_kernel.domain.values import (
    HUNDRED,
    ROUNDING_PRECISION,
    ZERO,
    percent_of,
    round_amount,
    to_decimal,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ROUNDING_PRECISION",
    "ZERO",
    "HUNDRED",
    "percent_of",
    "round_amount",
    "to_decimal",
]
