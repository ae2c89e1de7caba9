"""Number parsing utilities for request payloads."""
import re
from decimal import Decimal, InvalidOperation

MONEY_PATTERN = re.compile(r"^(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{1,2})?$")


def parse_money(value) -> Decimal:
    """
    Parse a non-negative monetary amount (e.g. 1,234.56, "25", 25.5) to Decimal.

    Rules:
    - Thousands separator: comma (,), properly grouped
    - Decimal separator: dot (.)
    - At most 2 decimal digits
    - No negatives

    Raises:
        ValueError: if the value is invalid or empty.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Invalid amount. Use 1,234.56')

    if isinstance(value, (int, Decimal)):
        cleaned = str(value)
    elif isinstance(value, float):
        cleaned = repr(value)
    else:
        cleaned = str(value).strip()

    if not cleaned or not MONEY_PATTERN.match(cleaned):
        raise ValueError('Invalid amount. Use 1,234.56')

    try:
        decimal_value = Decimal(cleaned.replace(',', ''))
    except InvalidOperation:
        raise ValueError('Invalid amount. Use 1,234.56')

    return decimal_value.quantize(Decimal('0.01'))


def parse_quantity(value) -> int:
    """
    Parse a whole-unit quantity ("3", 3, 3.0).

    Raises:
        ValueError: if the value is not a whole number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Quantity must be a whole number')
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError('Quantity must be a whole number')
    if not number.is_finite() or number != number.to_integral_value():
        raise ValueError('Quantity must be a whole number')
    return int(number)
