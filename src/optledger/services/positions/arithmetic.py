"""Decimal helpers shared by the position engine."""

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def quantize(value: Decimal, places: int) -> Decimal:
    """Round to a fixed number of decimal places, half up."""
    return value.quantize(Decimal(10) ** -places, rounding=ROUND_HALF_UP)


def percentage(part: Decimal, base: Decimal, places: int) -> Decimal:
    """part / base * 100, rounded. Zero when base is zero."""
    if base == 0:
        return quantize(ZERO, places)
    return quantize(part / base * HUNDRED, places)
