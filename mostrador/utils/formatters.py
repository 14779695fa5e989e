"""
Utilidades de formateo para reportes de caja.
Montos y fechas en estilo argentino.
"""
from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import Union, Optional


def money_ar(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Formatea un monto con exactamente 2 decimales: punto para miles, coma decimal.

    Examples:
        money_ar(1500) -> "$ 1.500,00"
        money_ar(Decimal('-70')) -> "-$ 70,00"
        money_ar(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value).replace(",", ".")).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    integer_part, decimal_part = f"{abs(num):.2f}".split(".")
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = '.'.join(groups)[::-1]

    return f"{sign}$ {integer_formatted},{decimal_part}"


def signed_money_ar(value: Union[int, float, Decimal, str, None]) -> str:
    """Like money_ar but always shows the sign ("+$ 10,00", "-$ 70,00")."""
    text = money_ar(value)
    if text != "-" and not text.startswith("-"):
        return f"+{text}"
    return text


def datetime_ar(value: Optional[datetime], with_time: bool = True) -> str:
    """
    Formatea un datetime como DD/MM/YYYY HH:MM.

    Examples:
        datetime_ar(datetime(2026, 1, 12, 15, 30)) -> "12/01/2026 15:30"
    """
    if not isinstance(value, datetime):
        return "-"
    return value.strftime("%d/%m/%Y %H:%M" if with_time else "%d/%m/%Y")
