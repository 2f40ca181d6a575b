"""
Money helpers shared by the billing calculator and the order payloads.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    # str() keeps binary float artefacts (0.1 -> 0.1000000000000000055...) out
    return value if isinstance(value, Decimal) else Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(lines: Iterable[tuple[Number, Number]]) -> Decimal:
    """Unrounded sum of price x quantity over (price, quantity) pairs."""
    total = Decimal("0")
    for price, quantity in lines:
        total += to_decimal(price) * to_decimal(quantity)
    return total
