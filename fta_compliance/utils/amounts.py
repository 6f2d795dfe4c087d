"""Fixed-point helpers for monetary amounts."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal('0.01')


def to_decimal(value: Any, default: Decimal = Decimal('0')) -> Decimal:
    """Convert ints, floats and numeric strings to Decimal without float noise."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the shortest repr, so 0.1 stays 0.1
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default


def quantize_amount(value: Any) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Any) -> str:
    """Two-decimal string form used in hashes, XML and rendered pages."""
    return f"{quantize_amount(value):.2f}"


def format_rate(value: Any) -> str:
    """Render a percentage without trailing zeros ('5', '0', '2.5')."""
    rate = to_decimal(value)
    if rate == rate.to_integral_value():
        return str(rate.quantize(Decimal('1')))
    return format(rate.normalize(), 'f')


def within_tolerance(a: Any, b: Any, tolerance: Decimal = CENT) -> bool:
    """True when |a - b| <= tolerance, compared exactly in Decimal."""
    return abs(to_decimal(a) - to_decimal(b)) <= tolerance
