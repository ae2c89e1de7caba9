"""
Formatting helpers for CLI output and receipts.
Philippine peso style: comma thousands, dot decimals.
"""
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

DEFAULT_CURRENCY_SYMBOL = '₱'


def num_ph(value: Union[int, Decimal, str, None], decimals: int = 2) -> str:
    """
    Format a number with thousands separators.

    Examples:
        num_ph(1500) -> "1,500.00"
        num_ph("1234.5") -> "1,234.50"
        num_ph(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return "-"
    return f"{num:,.{decimals}f}"


def money_ph(value, symbol: Optional[str] = None) -> str:
    """
    Format an amount as pesos.

    Examples:
        money_ph(Decimal('1234.5')) -> "₱1,234.50"
        money_ph(-20) -> "-₱20.00"
    """
    formatted = num_ph(value)
    if formatted == "-":
        return formatted
    symbol = DEFAULT_CURRENCY_SYMBOL if symbol is None else symbol
    if formatted.startswith('-'):
        return f"-{symbol}{formatted[1:]}"
    return f"{symbol}{formatted}"

