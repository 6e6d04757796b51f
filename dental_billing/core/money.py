from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value: Number) -> Decimal:
    """Convert to a Decimal rounded half-up to cents.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_rate(value: Number) -> Decimal:
    """Rates (tax, discount percentage) keep their precision."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value)
