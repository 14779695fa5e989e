"""Numeric-safety helpers for money and quantity arithmetic."""
import decimal
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Convert any input to a finite Decimal, or ``default`` (zero).

    Accepts Decimal, int, float and numeric strings (comma or dot decimal
    separator). NaN, Infinity, None, booleans and garbage all collapse to
    ``default``.

    Examples:
        to_decimal('12.50') -> Decimal('12.50')
        to_decimal(3) -> Decimal('3')
        to_decimal(float('nan')) -> Decimal('0')
        to_decimal('abc') -> Decimal('0')
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # str() keeps the short repr (0.1 instead of 0.1000000000000000055...)
        result = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip()
        if ',' in cleaned and '.' not in cleaned:
            cleaned = cleaned.replace(',', '.')
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            return default
    else:
        return default

    if not result.is_finite():
        return default
    return result


def parse_lenient(value: Any) -> Decimal:
    """
    Parse a number keeping NaN / Infinity instead of zeroing them.

    Used for values whose corruption must be detected downstream rather
    than silently coerced (a cart line's claimed unit price). Unparseable
    input becomes NaN.
    """
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        return Decimal('NaN')
    try:
        if isinstance(value, float):
            return Decimal(str(value)) if value == value else Decimal('NaN')
        return Decimal(str(value).strip().replace(',', '.'))
    except InvalidOperation:
        return Decimal('NaN')


def is_finite(value: Any) -> bool:
    """True for a finite Decimal/int/float."""
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, (int, float)):
        return Decimal(str(value)).is_finite()
    return False


def round_money(value: Decimal) -> Decimal:
    """
    Round half-up to cents.

    Never raises: a value too large to carry cents at the context precision
    comes back as NaN, and NaN/Infinity pass through unchanged.
    """
    if not value.is_finite():
        return value
    with decimal.localcontext() as ctx:
        ctx.traps[InvalidOperation] = False
        return value.quantize(CENT, rounding=ROUND_HALF_UP)


def add(*values: Decimal) -> Decimal:
    """Sum that lets NaN / Infinity propagate instead of raising."""
    with decimal.localcontext() as ctx:
        ctx.traps[InvalidOperation] = False
        ctx.traps[decimal.Overflow] = False
        total = ZERO
        for value in values:
            total += value
    return total


def multiply(a: Decimal, b: Decimal) -> Optional[Decimal]:
    """
    ``a * b`` without raising on non-finite operands.

    Returns None when the product is NaN or infinite, so the caller can
    exclude the term instead of crashing mid-sum.
    """
    with decimal.localcontext() as ctx:
        ctx.traps[InvalidOperation] = False
        ctx.traps[decimal.Overflow] = False
        result = a * b
    return result if result.is_finite() else None


def safe_sum(values) -> Decimal:
    """Sum the finite members of ``values``; anything else counts as zero."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total
