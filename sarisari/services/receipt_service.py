"""
Receipt rendering for completed and cancelled sales.

Two formats: a fixed-width text slip for 58mm thermal printers and a
structured dict for screens and digital receipts.
"""
from decimal import Decimal
from typing import Optional

from sarisari.models import Sale
from sarisari.utils.formatters import money_ph

DEFAULT_STORE_NAME = 'Sari-Sari Store'
RECEIPT_WIDTH = 32
FOOTER_LINES = ('Thank you for shopping!', 'Please come again.')


class ReceiptRenderer:
    """Formats a loaded Sale (items and products included) as a receipt."""

    def __init__(self, store_name: str = DEFAULT_STORE_NAME, tax_rate: Optional[Decimal] = None,
                 currency_symbol: Optional[str] = None):
        self.store_name = store_name or DEFAULT_STORE_NAME
        self.tax_rate = tax_rate
        self.currency_symbol = currency_symbol

    def to_text(self, sale: Sale, cashier_name: Optional[str] = None) -> str:
        single = '-' * RECEIPT_WIDTH
        double = '=' * RECEIPT_WIDTH

        lines = [double, self.store_name.center(RECEIPT_WIDTH).rstrip(), double, '']
        if sale.is_cancelled:
            lines.append('*** CANCELLED ***'.center(RECEIPT_WIDTH).rstrip())
        lines += [
            f"Date: {sale.created_at:%Y-%m-%d %H:%M}",
            f"TXN: {sale.transaction_number}",
            f"Cashier: {self._cashier(sale, cashier_name)}",
            single,
            'ITEM'.ljust(16) + 'QTY'.rjust(5) + 'PRICE'.rjust(11),
            single,
        ]
        for item in sale.items:
            name = (item.product.name if item.product is not None else f"#{item.product_id}")[:15]
            lines.append(name.ljust(16) + str(item.quantity).rjust(5) + self._money(item.total_price).rjust(11))

        lines += [single, self._total_line('Subtotal:', self._money(sale.subtotal))]
        if sale.discount > 0:
            lines.append(self._total_line('Discount:', f"-{self._money(sale.discount)}"))
        lines.append(self._total_line(self._tax_label(), self._money(sale.tax)))
        lines += [
            single,
            self._total_line('TOTAL:', self._money(sale.total_amount)),
            self._total_line('Cash:' if sale.payment_method.value == 'cash' else 'Paid:',
                             self._money(sale.payment_received)),
            self._total_line('Change:', self._money(sale.change_given)),
            double,
            '',
        ]
        lines += FOOTER_LINES
        return '\n'.join(lines) + '\n'

    def to_dict(self, sale: Sale, cashier_name: Optional[str] = None) -> dict:
        return {
            'header': {
                'store_name': self.store_name,
                'transaction_number': sale.transaction_number,
                'date': sale.created_at.isoformat() if sale.created_at else None,
                'status': sale.status.value,
            },
            'items': [
                {
                    'name': item.product.name if item.product is not None else None,
                    'quantity': item.quantity,
                    'unit_price': str(item.unit_price),
                    'total_price': str(item.total_price),
                }
                for item in sale.items
            ],
            'totals': {
                'subtotal': str(sale.subtotal),
                'discount': str(sale.discount),
                'tax': str(sale.tax),
                'total': str(sale.total_amount),
                'payment_method': sale.payment_method.value,
                'payment_received': str(sale.payment_received),
                'change_given': str(sale.change_given),
                'total_display': self._money(sale.total_amount),
            },
            'footer': {
                'message': FOOTER_LINES[0],
                'cashier': self._cashier(sale, cashier_name),
            },
        }

    def _money(self, value) -> str:
        return money_ph(value, self.currency_symbol)

    def _tax_label(self) -> str:
        if self.tax_rate is None:
            return 'Tax:'
        return f"Tax ({(self.tax_rate * 100).normalize():f}%):"

    @staticmethod
    def _total_line(label, amount) -> str:
        return label.ljust(20) + amount.rjust(12)

    @staticmethod
    def _cashier(sale, cashier_name) -> str:
        if cashier_name:
            return cashier_name
        return f"#{sale.cashier_id}" if sale.cashier_id is not None else 'Staff'
