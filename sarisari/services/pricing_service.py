"""
Pricing calculator - pure cart arithmetic, no I/O.

All money is Decimal and every reported figure is rounded to centavos with
ROUND_HALF_UP. Discount is applied before tax:

    subtotal   = sum(unit_price * quantity)
    discount   = subtotal * discount_percent / 100
    tax        = (subtotal - discount) * tax_rate
    total      = subtotal - discount + tax
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Tuple

from sarisari.exceptions import InvalidCartError, InvalidDiscountError

CENTS = Decimal('0.01')
DEFAULT_TAX_RATE = Decimal('0.12')


def to_decimal(value, field='amount') -> Decimal:
    """
    Convert ints/strings/Decimals to Decimal without going through float.

    NaN and infinities are rejected along with unparseable input.
    """
    if isinstance(value, bool):
        raise InvalidCartError(f"Invalid {field}: {value!r}", {field: str(value)})
    if isinstance(value, float):
        value = repr(value)
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidCartError(f"Invalid {field}: {value!r}", {field: str(value)})
    if not number.is_finite():
        raise InvalidCartError(f"Invalid {field}: {value!r}", {field: str(value)})
    return number


def parse_discount(discount_percent) -> Decimal:
    """Discount percentage as a Decimal in [0, 100]."""
    try:
        discount = to_decimal(discount_percent, 'discount_percent')
    except InvalidCartError:
        raise InvalidDiscountError(str(discount_percent))
    if discount < 0 or discount > 100:
        raise InvalidDiscountError(str(discount))
    return discount


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartLine:
    """One priced cart line."""
    product_id: int
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class PricingResult:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    lines: Tuple[CartLine, ...] = ()


class PricingCalculator:
    """Computes subtotal, discount, tax and total for a cart."""

    def __init__(self, tax_rate=DEFAULT_TAX_RATE):
        tax_rate = to_decimal(tax_rate, 'tax_rate')
        if tax_rate < 0:
            raise ValueError(f"tax_rate must be non-negative, got {tax_rate}")
        self.tax_rate = tax_rate

    def calculate(self, lines: Iterable[CartLine], discount_percent=0) -> PricingResult:
        lines = tuple(lines)
        if not lines:
            raise InvalidCartError('Cart cannot be empty')

        for line in lines:
            if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity < 1:
                raise InvalidCartError(
                    f"Quantity must be at least 1 for product {line.product_id}",
                    {'product_id': line.product_id, 'quantity': line.quantity},
                )
            if line.unit_price is None or to_decimal(line.unit_price, 'unit_price') < 0:
                raise InvalidCartError(
                    f"Unit price must be non-negative for product {line.product_id}",
                    {'product_id': line.product_id, 'unit_price': line.unit_price},
                )

        discount_percent = parse_discount(discount_percent)

        subtotal = round_money(sum(
            (to_decimal(line.unit_price, 'unit_price') * line.quantity for line in lines),
            Decimal('0'),
        ))
        discount_amount = round_money(subtotal * discount_percent / Decimal('100'))
        taxable_amount = subtotal - discount_amount
        tax_amount = round_money(taxable_amount * self.tax_rate)
        total = taxable_amount + tax_amount

        return PricingResult(
            subtotal=subtotal,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            total=total,
            lines=lines,
        )
