from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union
from haggle.models.bargaining import MinPriceType

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest amount a DECIMAL(10, 2) column holds.
MAX_MONEY = Decimal("99999999.99")


def to_decimal(value: Number) -> Decimal:
    """Parses a finite Decimal. Floats go through str() first."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount


def to_money(value: Number) -> Decimal:
    """Converts to a Decimal quantized to cents (half-up), within the storable range."""
    amount = to_decimal(value)
    if abs(amount) > MAX_MONEY:
        raise ValueError(f"Amount out of range: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_min_price(min_price_type: MinPriceType, value: Number, original_price: Number) -> Decimal:
    """
    Resolves a min-price rule against the variant's original price.

    percentage: original * value / 100. fixed: value as-is.
    The result never exceeds the original price and never drops below zero.
    """
    original = max(to_money(original_price), ZERO)
    raw = to_decimal(value)
    if MinPriceType(min_price_type) == MinPriceType.PERCENTAGE:
        candidate = original * raw / Decimal(100)
    else:
        candidate = raw
    return to_money(max(ZERO, min(candidate, original)))
