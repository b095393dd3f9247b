"""
Money helpers. Amounts are stored as floats but every calculation goes
through Decimal and is quantized half-up to two places.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union

Number = Union[int, float, str, Decimal]

TWO_PLACES = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def quantize(value: Number) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round_money(value: Number) -> float:
    """Round to 2 decimals using standard half-up rounding."""
    return float(quantize(value))


def percentage_of(amount: Number, percentage: Number) -> Decimal:
    return to_decimal(amount) * to_decimal(percentage) / Decimal(100)


def to_minor_units(amount: Number) -> int:
    """Gateway amount (paise/cents) for a major-unit value."""
    return int(quantize(amount) * 100)


def split_amount(total: Number, parts: int) -> List[float]:
    """
    Split total into `parts` equal shares rounded to 2 decimals.
    The last share absorbs the rounding remainder so the shares sum to total.
    """
    if parts <= 0:
        return []
    total_dec = quantize(total)
    share = quantize(total_dec / parts)
    shares = [share] * (parts - 1)
    shares.append(total_dec - share * (parts - 1))
    return [float(s) for s in shares]
